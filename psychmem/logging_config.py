"""Loguru logging setup for host processes embedding psychmem."""

import os
import sys
from typing import Any

from loguru import logger

LOG_FORMAT = "<level>{time:YYYY-MM-DD HH:mm:ss} | {name}:{function}:{line} | {message}</level>"


def setup_logging(level: str | None = None, sink: Any = None) -> int:
    """
    Replace loguru's handlers with a single sink.

    Args:
        level: Log level; falls back to ``PSYCHMEM_LOG_LEVEL``, then ``LOG_LEVEL``, then INFO.
        sink: Anything loguru accepts as a sink; stderr by default.

    Returns:
        The loguru handler id.
    """
    if level is None:
        level = os.environ.get("PSYCHMEM_LOG_LEVEL") or os.environ.get("LOG_LEVEL", "INFO")

    logger.remove()
    return logger.add(
        sink or sys.stderr,
        format=LOG_FORMAT,
        level=level.upper(),
        colorize=sink is None,
        backtrace=True,
        diagnose=True,
    )
