"""
Loguru sink configuration.

Structured context is passed as keyword arguments to the logger
(``logger.info("Invoking Bedrock", model_id=...)``) and ends up in the
record's ``extra`` dict, which the JSON sink serializes as-is.
"""

import sys
from loguru import logger
from .config import settings

HUMAN_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - "
    "<level>{message}</level> {extra}"
)


def setup_logging(level: str | None = None, json_logs: bool | None = None):
    """
    Replace loguru's default sink with a single stderr sink.

    Args:
        level: Minimum level (defaults to LOG_LEVEL)
        json_logs: Serialize records as JSON lines (defaults to LOG_JSON)

    Returns:
        The configured loguru logger
    """
    level = level or settings.log_level
    json_logs = settings.log_json if json_logs is None else json_logs

    logger.remove()
    if json_logs:
        logger.add(sys.stderr, level=level, serialize=True)
    else:
        logger.add(sys.stderr, level=level, format=HUMAN_FORMAT)

    return logger
