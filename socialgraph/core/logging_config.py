from logging.config import dictConfig
from typing import Optional

from socialgraph.core.config import settings


def build_logging_config(level: str) -> dict:
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "default",
            },
        },
        "root": {
            "level": level,
            "handlers": ["console"],
        },
        "loggers": {
            "socialgraph": {
                "level": level,
                "handlers": ["console"],
                "propagate": False,
            },
            "httpx": {
                "level": "WARNING",
                "handlers": ["console"],
                "propagate": False,
            },
        },
    }


def setup_logging(level: Optional[str] = None) -> None:
    """Configure process-wide logging once at startup"""
    if level is None:
        level = "DEBUG" if settings.DEBUG else settings.LOG_LEVEL
    dictConfig(build_logging_config(level.upper()))
