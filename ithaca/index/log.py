"""Logging configuration using loguru.

The CLI writes results to stdout and diagnostics to stderr.  At INFO and
above the stderr lines are short (level and message); at DEBUG they carry a
timestamp and the call site.  Libraries that log through stdlib ``logging``
(anyio, asyncio) are routed into the same sink.
"""

from __future__ import annotations

import logging
import sys

from loguru import logger

COMPACT_FORMAT = "<level>{level: <8}</level> | {message}"
DEBUG_FORMAT = (
    "<green>{time:HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)


class _InterceptHandler(logging.Handler):
    """Forward stdlib records to loguru, keeping the original call site."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame = logging.currentframe()
        depth = 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def log_format(level: str) -> str:
    """The stderr format for *level*: detailed for DEBUG and below."""
    if logger.level(level).no <= logger.level("DEBUG").no:
        return DEBUG_FORMAT
    return COMPACT_FORMAT


def setup_logging(level: str = "INFO") -> None:
    """Make loguru the only sink, writing to stderr at *level*."""
    level = level.upper()

    logger.remove()
    logger.add(sys.stderr, level=level, format=log_format(level), diagnose=False)

    logging.basicConfig(handlers=[_InterceptHandler()], level=0, force=True)
    logging.getLogger("asyncio").setLevel(logging.WARNING)

    logger.debug("Logging initialised (level={})", level)
