"""Logging configuration for the Discord Claude relay."""

import logging
import sys
from logging.handlers import TimedRotatingFileHandler

from config import LOG_BACKUP_COUNT, LOG_DIR, LOG_LEVEL, LOG_TO_FILE
from utils.log_sanitizer import sanitize_log


class RedactingFilter(logging.Filter):
    """Masks credentials in every record before a handler formats it."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        record.msg = sanitize_log(message)
        record.args = None
        return True


def setup_logging(
    level: str = LOG_LEVEL,
    to_file: bool = LOG_TO_FILE,
    log_dir=LOG_DIR,
) -> logging.Logger:
    """Set up logging to a daily rotated file and/or the console."""
    logger = logging.getLogger("discord_relay")
    logger.setLevel(getattr(logging, level, logging.INFO))

    # Clear any existing handlers
    logger.handlers.clear()

    redactor = RedactingFilter()

    if to_file:
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = TimedRotatingFileHandler(
            log_dir / "discord-relay.log",
            when="midnight",
            backupCount=LOG_BACKUP_COUNT,
            encoding="utf-8",
        )
        file_handler.setFormatter(logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        ))
        file_handler.addFilter(redactor)
        logger.addHandler(file_handler)

    # Console handler when attached to a terminal, or when it is the only sink
    if sys.stdout is not None and (sys.stdout.isatty() or not to_file):
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(message)s",
            datefmt="%H:%M:%S"
        ))
        console_handler.addFilter(redactor)
        logger.addHandler(console_handler)

    return logger


# Global logger instance
logger = setup_logging()
