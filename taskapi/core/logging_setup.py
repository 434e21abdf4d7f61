"""
Logging setup for the API process.

Application modules log through `logging.getLogger(__name__)`; this only
attaches one console handler to the `taskapi` logger tree. uvicorn keeps
its own handlers for access logs.
"""

from __future__ import annotations

import logging
import os
import sys

_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def log_level() -> int:
    raw = os.environ.get("LOG_LEVEL", "INFO").strip().upper() or "INFO"
    level = logging.getLevelName(raw)
    return level if isinstance(level, int) else logging.INFO


def setup_logging(level: int | None = None) -> None:
    """
    Configure the `taskapi` logger. Safe to call more than once.
    """
    logger = logging.getLogger("taskapi")
    logger.setLevel(log_level() if level is None else level)

    if any(getattr(h, "_taskapi_handler", False) for h in logger.handlers):
        return

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(_FORMAT))
    handler._taskapi_handler = True  # type: ignore[attr-defined]
    logger.addHandler(handler)
    logger.propagate = False
