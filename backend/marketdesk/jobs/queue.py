from __future__ import annotations

from redis import Redis
from rq import Queue
from rq.job import Job

from marketdesk.config.settings import settings
from marketdesk.jobs.batch_fetch import run_batch_fetch


def get_redis_connection() -> Redis:
    return Redis.from_url(settings.redis_url)


def get_queue(name: str | None = None) -> Queue:
    queue_name = name or settings.batch.queue_name
    return Queue(name=queue_name, connection=get_redis_connection())


def enqueue_batch_fetch(batch_num: int = 0, symbols: list[str] | None = None) -> Job:
    queue = get_queue()
    return queue.enqueue(run_batch_fetch, batch_num=batch_num, symbols=symbols)
