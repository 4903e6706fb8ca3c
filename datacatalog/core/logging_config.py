"""
Logging setup for catalog processes.

Catalog modules log under the ``datacatalog`` namespace; SQL emitted by the
storage layer is logged by ``sqlalchemy.engine`` and stays quiet unless
``settings.log_sql`` is enabled.
"""
from __future__ import annotations

import logging
from logging.config import dictConfig
from typing import Optional

from datacatalog.core.config import settings

LOG_FORMAT = "%(asctime)s | %(levelname)-7s | %(name)s | %(message)s"

_is_configured = False


def build_logging_config(level: str, log_sql: bool = False) -> dict:
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {"format": LOG_FORMAT, "datefmt": "%Y-%m-%d %H:%M:%S"},
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "standard",
                "stream": "ext://sys.stdout",
            }
        },
        "loggers": {
            "datacatalog": {"level": level},
            "sqlalchemy.engine": {"level": "INFO" if log_sql else "WARNING"},
        },
        "root": {"handlers": ["console"], "level": level},
    }


def configure_logging(level: Optional[str] = None, log_sql: Optional[bool] = None) -> None:
    """
    Configure catalog logging once per process.

    Args:
        level: Log level override; falls back to ``settings.log_level``.
        log_sql: Log every SQL statement; falls back to ``settings.log_sql``.
    """
    global _is_configured

    if _is_configured:
        return

    log_level = (level or settings.log_level or "INFO").upper()
    dictConfig(build_logging_config(log_level, settings.log_sql if log_sql is None else log_sql))
    logging.getLogger(__name__).debug("Logging configured at %s", log_level)

    _is_configured = True
