from __future__ import annotations

import logging
import os

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _level_from_env(default: int) -> int:
    raw = os.getenv("SECTIONRANK_LOG_LEVEL")
    if not raw:
        return default
    level = logging.getLevelName(raw.strip().upper())
    return level if isinstance(level, int) else default


def get_logger(name: str, level: int = logging.INFO) -> logging.Logger:
    """Create or reuse a module-level logger with a single stream handler."""
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT))
        logger.addHandler(handler)
    logger.setLevel(_level_from_env(level))
    return logger


__all__ = ["get_logger", "LOG_FORMAT"]
