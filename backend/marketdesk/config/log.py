from __future__ import annotations

import logging

from marketdesk.config.settings import settings

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str | None = None) -> None:
    """Install one stream handler on the root logger unless one exists."""
    logging.basicConfig(level=(level or settings.log_level).upper(), format=LOG_FORMAT)
