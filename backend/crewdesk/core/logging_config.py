# backend/crewdesk/core/logging_config.py
"""
Logging configuration (loguru).

Authorization decisions are logged with ids only. Never pass session tokens,
magic codes or invite tokens to the logger.
"""

import sys

from loguru import logger

from crewdesk.core.config import settings

_CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)


def setup_logging(level: str | None = None):
    """
    Replace loguru's default handler with a single console sink.
    Safe to call more than once (each call resets the sinks).
    """
    logger.remove()
    logger.add(
        sys.stderr,
        format=_CONSOLE_FORMAT,
        level=(level or settings.LOG_LEVEL).upper(),
    )
    logger.debug("Logging configured for {} environment", settings.ENVIRONMENT)
    return logger
