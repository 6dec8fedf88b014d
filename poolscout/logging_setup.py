"""Logging configuration for the CLI."""
from __future__ import annotations

import logging
import sys

_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"

# Third-party loggers that are too chatty below WARNING
_QUIET_LOGGERS = ("aiohttp", "asyncio")


class _ConsoleHandler(logging.StreamHandler):
    pass


def configure_logging(level: str = "INFO") -> None:
    """Set up root logging. Unknown level names fall back to INFO."""
    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        numeric = logging.INFO

    root = logging.getLogger()
    for existing in [h for h in root.handlers if isinstance(h, _ConsoleHandler)]:
        root.removeHandler(existing)

    handler = _ConsoleHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    root.addHandler(handler)
    root.setLevel(numeric)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
