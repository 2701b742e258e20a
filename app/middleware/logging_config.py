"""
Structured logging configuration.

- Production: one JSON object per line
- Development / testing: colored single-line format
- LOG_LEVEL picks the level, LOG_FORMAT=json|readable overrides the format

Engine and service loggers pass workflow context through ``extra=``
(subject_type, subject_id, workflow_id, node_id ...).  RequestContextFilter
adds the request id and acting user to every record emitted inside a
request.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

from flask import g, has_request_context

# Keys copied from the LogRecord into the JSON payload when present
CONTEXT_FIELDS = (
    "request_id",
    "method",
    "path",
    "status",
    "duration_ms",
    "remote_addr",
    "user_id",
    "subject_type",
    "subject_id",
    "workflow_id",
    "node_id",
    "node_order",
    "approval_status",
)

NOISY_LOGGERS = ("urllib3", "werkzeug", "sqlalchemy.engine", "alembic.runtime.migration")


class RequestContextFilter(logging.Filter):
    """Stamp request_id / user_id from ``flask.g`` onto records that lack them."""

    def filter(self, record: logging.LogRecord) -> bool:
        if has_request_context():
            if getattr(record, "request_id", None) is None:
                record.request_id = g.get("request_id")
            if getattr(record, "user_id", None) is None:
                record.user_id = g.get("current_user_id")
        return True


class JSONFormatter(logging.Formatter):
    """One JSON document per record for log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "line": record.lineno,
        }
        for key in CONTEXT_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                entry[key] = value
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """Colored one-liner: time, level, logger, message, then workflow context."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        parts = [f"{color}{ts} {record.levelname:<8}{self.RESET} {record.name}: {record.getMessage()}"]

        subject_type = getattr(record, "subject_type", None)
        if subject_type:
            ctx = f"{subject_type}#{getattr(record, 'subject_id', '?')}"
            node_id = getattr(record, "node_id", None)
            if node_id is not None:
                ctx += f" node={node_id}"
            parts.append(f"({ctx})")
        duration = getattr(record, "duration_ms", None)
        if duration is not None:
            parts.append(f"[{duration:.0f}ms]")
        request_id = getattr(record, "request_id", None)
        if request_id:
            parts.append(f"rid={request_id}")

        line = " ".join(parts)
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _use_json(app) -> bool:
    fmt = os.getenv("LOG_FORMAT", "").lower()
    if fmt in ("json", "readable"):
        return fmt == "json"
    return not app.config.get("DEBUG", False) and not app.config.get("TESTING", False)


def configure_logging(app):
    """Install a single stderr handler on the root logger.

    LOG_LEVEL defaults to INFO in production and DEBUG elsewhere.
    """
    is_testing = app.config.get("TESTING", False)
    as_json = _use_json(app)

    default_level = "DEBUG" if app.config.get("DEBUG") or is_testing else "INFO"
    level_name = os.getenv("LOG_LEVEL", default_level).upper()
    level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if as_json else ReadableFormatter())
    handler.addFilter(RequestContextFilter())
    handler.setLevel(level)

    root = logging.getLogger()
    # create_app() runs once per test app; keep exactly one handler
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    app.logger.setLevel(level)

    if not is_testing:
        app.logger.info(
            "Logging configured: level=%s format=%s", level_name, "json" if as_json else "readable",
        )
