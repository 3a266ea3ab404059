from __future__ import annotations

import logging
import os

DEFAULT_FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"

# Per-request lines for these come from LlmClient already
_QUIET_LOGGERS = ("httpx", "httpcore")


def configure_logging() -> None:
    level = logging.getLevelName(os.getenv("LOG_LEVEL", "INFO").upper())
    if not isinstance(level, int):
        level = logging.INFO

    logging.basicConfig(level=level, format=os.getenv("LOG_FORMAT", DEFAULT_FORMAT))

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
