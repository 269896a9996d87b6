"""
Process-wide logging setup.

The daemon runs triage and digests on separate threads, so log lines carry
the thread name. HTTP and Vertex AI client libraries are kept at WARNING
unless INBOXQ_LOG_LEVEL asks for DEBUG.
"""

from __future__ import annotations

import logging
import os
from typing import Final

LOG_FORMAT: Final[str] = "%(asctime)s [%(threadName)s] %(name)s %(levelname)s: %(message)s"
NOISY_LOGGERS: Final[tuple[str, ...]] = ("urllib3", "google", "httpx")

_configured = False


def _level_from_env() -> int:
    name = os.getenv("INBOXQ_LOG_LEVEL", "INFO").upper()
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.INFO


def _configure_root(level: int) -> None:
    global _configured
    root = logging.getLogger()
    if not _configured:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        root.addHandler(handler)
        _configured = True
    root.setLevel(level)

    library_level = logging.DEBUG if level <= logging.DEBUG else logging.WARNING
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(library_level)


def get_logger(name: str) -> logging.Logger:
    """Module logger; the first call attaches the shared stderr handler."""
    level = _level_from_env()
    _configure_root(level)
    logger = logging.getLogger(name)
    logger.setLevel(level)
    return logger


def truncate_subject(subject: str | None, limit: int = 50) -> str:
    """Shorten a subject line for log output."""
    if not subject:
        return "(no subject)"
    return subject[:limit]
