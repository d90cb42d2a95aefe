"""Logging for the proposal service.

The package logger (``proposals``) is configured once from ``Settings``;
every module logger obtained through ``get_logger(__name__)`` sits below it
and inherits its handlers and level.
"""

import logging
import logging.handlers
from pathlib import Path
from typing import Optional

from proposals.core.config import Settings, get_settings

PACKAGE_LOGGER = "proposals"
LOG_FORMAT = "%(asctime)s [%(levelname)s] [%(name)s] %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"  # ISO 8601


def setup_logger(settings: Optional[Settings] = None, name: str = PACKAGE_LOGGER) -> logging.Logger:
    """Configure a logger from the service settings.

    Uses ``log_level``, ``log_console``, and, when ``file_logging`` is set,
    a rotating ``<log_dir>/<name>.log`` sized by ``log_max_bytes`` and
    ``log_backup_count``. Calling it again replaces the handlers installed
    by the previous call.

    Args:
        settings: Service settings (defaults to ``get_settings()``)
        name: Logger name

    Returns:
        Configured logger instance
    """
    settings = settings or get_settings()
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, settings.log_level))

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    if settings.file_logging:
        log_dir = Path(settings.log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_dir / f"{name}.log",
            maxBytes=settings.log_max_bytes,
            backupCount=settings.log_backup_count,
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    if settings.log_console:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
