"""
Structured logging for the engine.

Every record emitted while a request is being served is stamped with the
request id and the project / sprint / work item the URL addresses, so a
WIP rejection or a schedule run can be traced back to the call that caused
it without each service repeating the ids.  Services still pass narrower
scope (and ``event_type``) through ``extra=``; explicit extras win over the
request scope.

Output format:
    JSONFormatter      production (one object per line)
    ReadableFormatter  development / testing
    LOG_FORMAT=json|readable overrides the choice, LOG_LEVEL the level.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

from flask import g, has_request_context

# Ids a record can be scoped to, outermost first
SCOPE_FIELDS = ("organization_id", "project_id", "sprint_id", "work_item_id")

# Request attributes set by the timing middleware
REQUEST_FIELDS = ("request_id", "method", "path", "status", "duration_ms", "remote_addr")

_SCOPE_TAGS = {"organization_id": "org", "project_id": "p", "sprint_id": "s",
               "work_item_id": "wi"}


class RequestScopeFilter(logging.Filter):
    """Copy ``g.log_scope`` onto records that don't carry the ids themselves."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not has_request_context():
            return True
        for key, value in (getattr(g, "log_scope", None) or {}).items():
            if getattr(record, key, None) is None:
                setattr(record, key, value)
        return True


def record_scope(record: logging.LogRecord) -> dict:
    """Non-empty scope ids of a record, in SCOPE_FIELDS order."""
    return {
        key: getattr(record, key)
        for key in SCOPE_FIELDS
        if getattr(record, key, None) is not None
    }


class JSONFormatter(logging.Formatter):
    """One JSON object per record; scope ids are grouped under ``scope``."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
        }
        event = getattr(record, "event_type", None)
        if event:
            entry["event_type"] = event
        scope = record_scope(record)
        if scope:
            entry["scope"] = scope
        for key in REQUEST_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                entry[key] = value
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """Coloured single line: ``12:00:01 INFO  logger <event> [p=3 wi=7] message [12ms]``."""

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
        parts = [f"{color}{ts} {record.levelname:<8}{self.RESET} {record.name}:"]
        event = getattr(record, "event_type", None)
        if event:
            parts.append(f"<{event}>")
        scope = record_scope(record)
        if scope:
            parts.append("[" + " ".join(f"{_SCOPE_TAGS[k]}={v}" for k, v in scope.items()) + "]")
        parts.append(record.getMessage())
        duration = getattr(record, "duration_ms", None)
        if duration is not None:
            parts.append(f"[{duration:.0f}ms]")
        line = " ".join(parts)
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(app):
    """Install one stderr handler on the root logger with the request scope filter.

    JSON in production, readable otherwise; LOG_FORMAT and LOG_LEVEL override.
    """
    is_testing = app.config.get("TESTING", False)
    is_prod = not app.config.get("DEBUG", False) and not is_testing

    level_name = os.getenv("LOG_LEVEL", "INFO" if is_prod else "DEBUG")
    level = getattr(logging, level_name.upper(), logging.INFO)
    fmt = os.getenv("LOG_FORMAT", "json" if is_prod else "readable").lower()

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if fmt == "json" else ReadableFormatter())
    handler.addFilter(RequestScopeFilter())
    handler.setLevel(level)

    # Repeated create_app calls in tests must not stack handlers
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for noisy in ("werkzeug", "sqlalchemy.engine", "alembic"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
    app.logger.setLevel(level)

    if not is_testing:
        app.logger.info("Logging configured: level=%s format=%s", level_name, fmt)
