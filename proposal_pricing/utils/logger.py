"""Logging setup shared by the demo runner and the API server."""

from __future__ import annotations

import logging
import sys

LOG_FORMAT = "%(asctime)s │ %(levelname)-8s │ %(name)s:%(lineno)d │ %(message)s"

# Third-party loggers that drown out pricing activity at INFO
_NOISY_LOGGERS = ("pymongo", "httpx", "httpcore", "uvicorn.access")


def setup_logging(level: str = "INFO") -> None:
    """Attach a stdout handler to the root logger. Safe to call more than once."""
    root = logging.getLogger()
    if any(getattr(h, "_pricing_handler", False) for h in root.handlers):
        return

    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%H:%M:%S"))
    handler._pricing_handler = True  # type: ignore[attr-defined]
    root.addHandler(handler)
    root.setLevel(numeric_level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
