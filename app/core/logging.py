import sys

from loguru import logger

from app.core.config import settings

LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<8} | {name}:{function}:{line} - {message}"


def configure_logging(level: str = None) -> str:
    """Replace loguru's default handler with a stderr sink at the configured level."""
    log_level = (level or settings.LOG_LEVEL or "INFO").upper()
    logger.remove()
    logger.add(sys.stderr, level=log_level, format=LOG_FORMAT)
    logger.info(f"Logger configured with level: {log_level}")
    return log_level
