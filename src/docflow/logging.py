"""Logging setup shared by the web app and scripts."""

from __future__ import annotations

import logging
import sys

_FORMAT = "%(asctime)s %(levelname)-8s %(name)s — %(message)s"
_QUIET_LOGGERS = ("httpx", "httpcore", "azure", "uvicorn.access")


def configure_logging(level: str = "INFO", *, log_file: str | None = None) -> None:
    """Configure root logging with a console handler and an optional file handler."""
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    logging.basicConfig(
        level=level.upper(),
        format=_FORMAT,
        handlers=handlers,
        force=True,
    )
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
