"""Logging configuration using loguru."""
import sys

from loguru import logger

LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level} | {module}:{function}:{line} | {message}"


def configure_logging(level: str = "INFO", log_file: str = None) -> None:
    """Route loguru output to stdout and, optionally, a rotating log file."""
    logger.remove()
    logger.add(sys.stdout, level=level, format=LOG_FORMAT)
    if log_file:
        logger.add(
            log_file,
            rotation="1 MB",
            retention="7 days",
            level=level,
            format=LOG_FORMAT,
        )
