"""
Logging setup for the image optimizer.

Handlers live on the package logger 'image_optimizer'. Module loggers from
get_logger(__name__) are its children and only propagate to it.
"""
import logging
import logging.handlers
from pathlib import Path
from .constants import (
    LOG_LEVEL, LOG_FORMAT, LOG_FILE,
    LOG_MAX_SIZE_MB, LOG_BACKUP_COUNT
)

ROOT_LOGGER_NAME = 'image_optimizer'


def setup_logger(name: str = None, log_file: str = LOG_FILE, level: str = LOG_LEVEL) -> logging.Logger:
    """
    Attach console and rotating file handlers to a logger.

    Handlers from an earlier call are closed and replaced, so a host can
    apply its own settings after modules have already started logging.

    Usage:
        from config.logging_config import setup_logger
        setup_logger(log_file=settings.log_file, level=settings.log_level)

    Args:
        name: Logger name. If None, the package logger.
        log_file: Rotating log file path. Empty string disables file logging.
        level: Level name, e.g. 'INFO' or 'DEBUG'.

    Returns:
        Configured logging.Logger instance.
    """
    logger = logging.getLogger(name or ROOT_LOGGER_NAME)

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    logger.setLevel(getattr(logging, level.upper()))

    console = logging.StreamHandler()
    console.setLevel(logging.INFO)
    console.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(console)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=LOG_MAX_SIZE_MB * 1024 * 1024,
            backupCount=LOG_BACKUP_COUNT
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(file_handler)

    return logger


def get_logger(name: str = None) -> logging.Logger:
    """
    Logger under the package logger; sets up defaults on first use.

    Usage:
        from config.logging_config import get_logger
        logger = get_logger(__name__)
    """
    root = logging.getLogger(ROOT_LOGGER_NAME)
    if not root.handlers:
        setup_logger()

    if not name or name == ROOT_LOGGER_NAME:
        return root
    if name.startswith(ROOT_LOGGER_NAME + '.'):
        return logging.getLogger(name)
    return root.getChild(name)
