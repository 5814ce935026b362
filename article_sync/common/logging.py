"""Structured logging configuration for article-sync."""

from __future__ import annotations

import logging
import sys


def setup_logging(
    level: int | str | None = None,
    module_name: str = "article_sync",
) -> logging.Logger:
    """Configure and return a logger with consistent formatting.

    Args:
        level: Logging level. Defaults to ``ARTICLE_SYNC_LOG_LEVEL`` or INFO.
        module_name: Name for the logger instance.

    Returns:
        Configured logger.
    """
    logger = logging.getLogger(module_name)

    if logger.handlers:
        return logger

    if level is None:
        level = _default_level()
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    logger.setLevel(level)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)

    formatter = logging.Formatter(
        fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)

    return logger


def _default_level() -> str:
    # Settings load on first use
    from article_sync.common.config import settings

    return settings.logging.level
