"""
Shared helpers: logging setup.
"""
import logging
import logging.config

from app.core import config


LOGGING_CONFIG = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "standard": {
            "format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "standard",
        },
    },
    "loggers": {
        "": {
            "handlers": ["console"],
            "level": config.LOG_LEVEL,
        },
        "sqlalchemy.engine": {
            "level": "WARNING",
        },
    },
}

_configured = False


def setup_logging() -> None:
    """Configure application logging once per process."""
    global _configured
    if _configured:
        return
    logging.config.dictConfig(LOGGING_CONFIG)
    _configured = True


def get_logger(name: str) -> logging.Logger:
    """Get a module logger, configuring logging on first use."""
    setup_logging()
    return logging.getLogger(name)
