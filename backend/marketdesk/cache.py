from __future__ import annotations

import json
import logging
import threading
import time
from typing import Callable, Protocol

from redis import Redis
from redis.exceptions import RedisError

from marketdesk.config.settings import Settings, settings
from marketdesk.schemas.canonical import Endpoint
from marketdesk.schemas.provider import CascadeResult

logger = logging.getLogger(__name__)


def cache_key(symbol: str, endpoint: Endpoint) -> str:
    return f"marketdesk:{endpoint.value}:{symbol.strip().upper()}"


class ResultCache(Protocol):
    def get(self, symbol: str, endpoint: Endpoint) -> CascadeResult | None: ...

    def put(self, symbol: str, endpoint: Endpoint, result: CascadeResult) -> None: ...


class _TTLPolicy:
    def __init__(self, ttl_seconds: int, quote_ttl_seconds: int | None) -> None:
        self.ttl_seconds = ttl_seconds
        self.quote_ttl_seconds = quote_ttl_seconds

    def ttl_for(self, endpoint: Endpoint) -> int:
        if endpoint is Endpoint.QUOTE and self.quote_ttl_seconds is not None:
            return self.quote_ttl_seconds
        return self.ttl_seconds


class MemoryResultCache(_TTLPolicy):
    """Process-local TTL cache with a bounded number of entries.

    Writes take a lock for their own key only. When the cache grows past
    `max_entries`, expired entries go first, then the oldest writes.
    """

    def __init__(
        self,
        ttl_seconds: int = 1800,
        quote_ttl_seconds: int | None = None,
        max_entries: int = 1024,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(ttl_seconds, quote_ttl_seconds)
        self.max_entries = max_entries
        self._clock = clock
        self._entries: dict[str, tuple[float, CascadeResult]] = {}
        self._locks: dict[str, threading.Lock] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def _lock(self, key: str) -> threading.Lock:
        return self._locks.setdefault(key, threading.Lock())

    def get(self, symbol: str, endpoint: Endpoint) -> CascadeResult | None:
        key = cache_key(symbol, endpoint)
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, result = entry
        if self._clock() < expires_at:
            return result
        with self._lock(key):
            current = self._entries.get(key)
            if current is not None and self._clock() >= current[0]:
                del self._entries[key]
                self._locks.pop(key, None)
        return None

    def put(self, symbol: str, endpoint: Endpoint, result: CascadeResult) -> None:
        key = cache_key(symbol, endpoint)
        expires_at = self._clock() + self.ttl_for(endpoint)
        with self._lock(key):
            # Re-insert so iteration order tracks write age.
            self._entries.pop(key, None)
            self._entries[key] = (expires_at, result)
        if len(self._entries) > self.max_entries:
            self._evict()

    def _evict(self) -> None:
        now = self._clock()
        for key in list(self._entries):
            entry = self._entries.get(key)
            if entry is not None and now >= entry[0]:
                self._entries.pop(key, None)
                self._locks.pop(key, None)
        for key in list(self._entries):
            if len(self._entries) <= self.max_entries:
                break
            self._entries.pop(key, None)
            self._locks.pop(key, None)


class RedisResultCache(_TTLPolicy):
    """Shared cache in Redis. Expiry is delegated to SETEX.

    Redis faults and undecodable entries degrade to a miss.
    """

    def __init__(
        self,
        redis_url: str,
        ttl_seconds: int = 1800,
        quote_ttl_seconds: int | None = None,
    ) -> None:
        super().__init__(ttl_seconds, quote_ttl_seconds)
        self.redis_url = redis_url

    def _get_client(self) -> Redis:
        return Redis.from_url(self.redis_url)

    def get(self, symbol: str, endpoint: Endpoint) -> CascadeResult | None:
        key = cache_key(symbol, endpoint)
        try:
            client = self._get_client()
            raw = client.get(key)
        except RedisError as exc:
            logger.warning("Redis read failed for %s: %s", key, exc)
            return None

        if not raw:
            return None

        try:
            payload = json.loads(raw)
            return CascadeResult.model_validate(payload)
        except (json.JSONDecodeError, TypeError, ValueError) as exc:
            logger.warning("Discarding undecodable cache entry %s: %s", key, exc)
            return None

    def put(self, symbol: str, endpoint: Endpoint, result: CascadeResult) -> None:
        key = cache_key(symbol, endpoint)
        try:
            client = self._get_client()
            client.setex(key, self.ttl_for(endpoint), result.model_dump_json(by_alias=True))
        except RedisError as exc:
            logger.warning("Redis write failed for %s: %s", key, exc)


def build_cache(config: Settings | None = None) -> ResultCache:
    config = config or settings
    if config.cache_backend == "redis":
        return RedisResultCache(
            config.redis_url,
            ttl_seconds=config.cache_ttl_seconds,
            quote_ttl_seconds=config.quote_cache_ttl_seconds,
        )
    return MemoryResultCache(
        ttl_seconds=config.cache_ttl_seconds,
        quote_ttl_seconds=config.quote_cache_ttl_seconds,
        max_entries=config.cache_max_entries,
    )
