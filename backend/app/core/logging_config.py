"""Process-wide logging setup.

Modules log through ``logging.getLogger(__name__)``; this module only wires
handlers and formatters once at startup.  Every record gets a ``request_id``
attribute (``-`` outside of a request) so log lines from one HTTP call can be
correlated.
"""

from __future__ import annotations

import logging
import logging.config
import os
from contextvars import ContextVar
from typing import Any

from backend.app.core.config import settings

request_id_var: ContextVar[str] = ContextVar("request_id", default="-")

_FORMAT = "%(asctime)s %(levelname)s [%(name)s] [req:%(request_id)s] %(message)s"


class RequestIdFilter(logging.Filter):
    """Attach the current request id to every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get()
        return True


def build_logging_config(level: str, log_dir: str = "") -> dict[str, Any]:
    handlers: dict[str, dict[str, Any]] = {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "default",
            "filters": ["request_id"],
        },
    }
    if log_dir:
        handlers["combined_file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "formatter": "default",
            "filters": ["request_id"],
            "filename": os.path.join(log_dir, "combined.log"),
            "maxBytes": 10 * 1024 * 1024,
            "backupCount": 5,
            "encoding": "utf-8",
        }
        handlers["error_file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "formatter": "default",
            "filters": ["request_id"],
            "filename": os.path.join(log_dir, "error.log"),
            "maxBytes": 10 * 1024 * 1024,
            "backupCount": 5,
            "encoding": "utf-8",
            "level": "ERROR",
        }

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {
            "request_id": {"()": RequestIdFilter},
        },
        "formatters": {
            "default": {"format": _FORMAT, "datefmt": "%Y-%m-%d %H:%M:%S"},
        },
        "handlers": handlers,
        "loggers": {
            "backend": {"level": level.upper(), "handlers": list(handlers), "propagate": False},
        },
        "root": {"level": "WARNING", "handlers": ["console"]},
    }


def configure_logging() -> None:
    """Apply the logging configuration derived from settings."""
    if settings.LOG_DIR:
        os.makedirs(settings.LOG_DIR, exist_ok=True)
    logging.config.dictConfig(build_logging_config(settings.LOG_LEVEL, settings.LOG_DIR))
