"""
Logging configuration
Console output (coloured in development) plus an optional rotating log file
"""
import os
import logging
import logging.config
from typing import Any, Dict

from campus_leave.config import Settings


def build_logging_config(settings: Settings) -> Dict[str, Any]:
    """Build a dictConfig mapping for the given settings"""
    handlers: Dict[str, Any] = {
        "console": {
            "level": "DEBUG" if settings.DEBUG else settings.LOG_LEVEL,
            "class": "logging.StreamHandler",
            "formatter": "colored" if settings.is_development() else "standard",
        }
    }

    if settings.LOG_FILE:
        handlers["file"] = {
            "level": settings.LOG_LEVEL,
            "class": "logging.handlers.RotatingFileHandler",
            "filename": settings.LOG_FILE,
            "maxBytes": 10485760,  # 10MB
            "backupCount": 5,
            "formatter": "standard",
            "encoding": "utf8",
        }

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {
                "format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
            },
            "colored": {
                "()": "colorlog.ColoredFormatter",
                "format": "%(log_color)s%(asctime)s [%(levelname)s] %(name)s: %(message)s",
                "log_colors": {
                    "DEBUG": "cyan",
                    "INFO": "green",
                    "WARNING": "yellow",
                    "ERROR": "red",
                    "CRITICAL": "red,bg_white",
                },
            },
        },
        "handlers": handlers,
        "loggers": {
            "": {
                "handlers": list(handlers),
                "level": settings.LOG_LEVEL,
            },
            "pymongo": {"level": "WARNING"},
        },
    }


def setup_logging(settings: Settings) -> None:
    """Apply logging configuration; creates the log directory if needed"""
    if settings.LOG_FILE:
        log_dir = os.path.dirname(settings.LOG_FILE)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)

    logging.config.dictConfig(build_logging_config(settings))
