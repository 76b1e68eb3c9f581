"""
Logging setup for the portal.

Records carry review context through ``extra=`` (project, stage,
requirement, request). Production writes one JSON object per line, every
other environment a short readable line with the context appended.
``LOG_LEVEL`` overrides the default level.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

REQUEST_FIELDS = ("method", "path", "status", "duration_ms", "remote_addr", "request_id")
REVIEW_FIELDS = ("user_id", "project_id", "stage", "requirement_id")

_QUIET_LOGGERS = ("urllib3", "werkzeug", "sqlalchemy.engine")


def record_context(record: logging.LogRecord, fields=REQUEST_FIELDS + REVIEW_FIELDS) -> dict:
    """The ``extra`` values set on a record, in field order."""
    return {
        key: getattr(record, key)
        for key in fields
        if getattr(record, key, None) is not None
    }


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **record_context(record),
        }
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """``HH:MM:SS LEVEL logger: message [project=3 stage=design]``"""

    def format(self, record: logging.LogRecord) -> str:
        line = f"{datetime.now():%H:%M:%S} {record.levelname:<8} {record.name}: {record.getMessage()}"
        context = record_context(record, REVIEW_FIELDS)
        if context:
            pairs = " ".join(f"{key.removesuffix('_id')}={value}" for key, value in context.items())
            line += f" [{pairs}]"
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(app):
    """Install a single stderr handler on the root logger for ``app``."""
    testing = app.config.get("TESTING", False)
    production = not app.config.get("DEBUG", False) and not testing

    level_name = os.getenv("LOG_LEVEL", "INFO" if production else "DEBUG").upper()
    level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if production else ReadableFormatter())

    root = logging.getLogger()
    # App factories run once per test; avoid stacking handlers
    root.handlers[:] = [handler]
    root.setLevel(level)
    app.logger.setLevel(level)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    if not testing:
        app.logger.info("Logging configured: level=%s json=%s", level_name, production)
