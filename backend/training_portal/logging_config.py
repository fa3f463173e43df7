import logging
import os
from logging.config import dictConfig
from typing import Dict, Optional

DEFAULT_LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

_HTTP_LOGGERS = ("httpx", "uvicorn.access")


def _level(name: str, default: str) -> str:
    return os.getenv(name, default).strip().upper() or default


def configure_logging(level: Optional[str] = None) -> None:
    """Configure the root logger plus the telemetry and SQL loggers.

    ``TRAINING_LOG_LEVEL`` sets the root level, ``TRAINING_TELEMETRY_LOG_LEVEL``
    the ``training.telemetry`` event stream and ``TRAINING_SQL_LOG_LEVEL`` the
    SQLAlchemy engine logger.
    """
    root_level = (level or _level("TRAINING_LOG_LEVEL", "INFO")).upper()
    loggers: Dict[str, Dict[str, object]] = {
        "training.telemetry": {"level": _level("TRAINING_TELEMETRY_LOG_LEVEL", root_level)},
        "sqlalchemy.engine": {"level": _level("TRAINING_SQL_LOG_LEVEL", "WARNING")},
    }

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "format": os.getenv("TRAINING_LOG_FORMAT", DEFAULT_LOG_FORMAT),
                },
            },
            "handlers": {
                "default": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                },
            },
            "loggers": loggers,
            "root": {
                "handlers": ["default"],
                "level": root_level,
            },
        }
    )

    if os.getenv("TRAINING_DEBUG_HTTP", "0") == "1":
        for name in _HTTP_LOGGERS:
            logging.getLogger(name).setLevel(logging.DEBUG)
