"""Logging configuration for the annotation tool.

Usage:
    from yolo_annotator.logger import get_logger
    logger = get_logger(__name__)
    logger.info("Export started")
    logger.error("Failed to copy image", exc_info=True)
"""

import logging
import sys

from yolo_annotator.config import get_log_level

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Module-level cache for loggers
_loggers: dict[str, logging.Logger] = {}


def _resolve_level(level: int | str | None) -> int:
    """Turn a level name or number into a logging level."""
    if level is None:
        level = get_log_level()
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.upper())
    if isinstance(resolved, int):
        return resolved
    return logging.INFO


def get_logger(name: str, level: int | str | None = None) -> logging.Logger:
    """Get or create a logger writing to stdout.

    Args:
        name: Logger name, typically ``__name__`` of the calling module.
        level: Logging level; defaults to ``YOLO_ANNOTATOR_LOG_LEVEL``.

    Returns:
        Configured logging.Logger instance.
    """
    if name in _loggers:
        return _loggers[name]

    logger = logging.getLogger(name)

    # Avoid adding duplicate handlers
    if not logger.handlers:
        resolved = _resolve_level(level)
        logger.setLevel(resolved)

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(resolved)
        console_handler.setFormatter(
            logging.Formatter(fmt=DEFAULT_FORMAT, datefmt=DEFAULT_DATE_FORMAT)
        )
        logger.addHandler(console_handler)

        # Keep records out of the root logger so uvicorn does not print them twice
        logger.propagate = False

    _loggers[name] = logger
    return logger


def set_log_level(level: int | str) -> None:
    """Set the level of every logger created through get_logger."""
    resolved = _resolve_level(level)
    for logger in _loggers.values():
        logger.setLevel(resolved)
        for handler in logger.handlers:
            handler.setLevel(resolved)
