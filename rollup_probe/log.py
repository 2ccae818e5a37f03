"""
Logging configuration for the rollup-probe package.
"""
import logging
import os
from typing import Optional

LOG_LEVEL_ENV_VAR = "LOG_LEVEL"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def parse_log_level(level: Optional[str]) -> int:
    """
    Map a level name to a logging level, defaulting to INFO.

    Args:
        level: Level name (debug, info, warn, warning, error), any case

    Returns:
        logging level constant
    """
    if not level:
        return logging.INFO
    return _LEVELS.get(level.strip().lower(), logging.INFO)


def configure_logging(level: Optional[str] = None) -> int:
    """
    Configure the package logger from an explicit level or LOG_LEVEL.

    Args:
        level: Optional level name; falls back to the LOG_LEVEL env var

    Returns:
        The level that was applied
    """
    resolved = parse_log_level(level or os.environ.get(LOG_LEVEL_ENV_VAR))
    package_logger = logging.getLogger("rollup_probe")
    package_logger.setLevel(resolved)
    if not package_logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        package_logger.addHandler(handler)
    return resolved
