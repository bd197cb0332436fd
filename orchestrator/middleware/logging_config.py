"""
Structured logging configuration.

- Development: readable colored lines with the onboarding context appended
  (``[onboarding=… task=…]``)
- Production: one JSON object per line; request fields plus the onboarding
  context keys services pass through ``extra=``
- Every record logged while a request is active carries its ``request_id``,
  so escalation and audit log lines can be joined to X-Request-ID
- LOG_LEVEL sets the root level; ESCALATION_LOG_LEVEL overrides it for the
  escalation and notification loggers
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

from flask import g, has_app_context

# Request fields set by middleware/timing.py
REQUEST_KEYS = ("method", "path", "status", "duration_ms", "remote_addr", "request_id")

# Onboarding context services attach via ``extra=``
CONTEXT_KEYS = ("onboarding_id", "task_id", "integration_id", "event_type", "urgency")

# Loggers that follow ESCALATION_LOG_LEVEL
ESCALATION_LOGGERS = (
    "orchestrator.services.escalation",
    "orchestrator.services.notification",
    "orchestrator.integrations.notification_gateway",
)

_CONTEXT_LABELS = {"onboarding_id": "onboarding", "task_id": "task", "integration_id": "integration"}


class RequestIdFilter(logging.Filter):
    """Copy ``g.request_id`` onto records emitted inside a request."""

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "request_id", None) is None and has_app_context():
            request_id = g.get("request_id")
            if request_id:
                record.request_id = request_id
        return True


class JSONFormatter(logging.Formatter):
    """JSON log formatter for production / log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)
        for key in REQUEST_KEYS + CONTEXT_KEYS:
            val = getattr(record, key, None)
            if val is not None:
                log_entry[key] = val
        return json.dumps(log_entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """Human-readable colored formatter for development."""

    COLORS = {
        "DEBUG": "\033[36m",      # cyan
        "INFO": "\033[32m",       # green
        "WARNING": "\033[33m",    # yellow
        "ERROR": "\033[31m",      # red
        "CRITICAL": "\033[35m",   # magenta
    }
    RESET = "\033[0m"

    @staticmethod
    def context(record: logging.LogRecord) -> str:
        parts = []
        for key, label in _CONTEXT_LABELS.items():
            value = getattr(record, key, None)
            if value:
                parts.append(f"{label}={str(value)[:8]}")
        urgency = getattr(record, "urgency", None)
        if urgency:
            parts.append(f"urgency={urgency}")
        return f" [{' '.join(parts)}]" if parts else ""

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        ts = datetime.now().strftime("%H:%M:%S")
        duration = getattr(record, "duration_ms", None)
        dur_str = f" [{duration:.0f}ms]" if duration is not None else ""
        msg = record.getMessage()
        base = (f"{color}{ts} {record.levelname:<8}{self.RESET} {record.name}: "
                f"{msg}{self.context(record)}{dur_str}")
        if record.exc_info and record.exc_info[0] is not None:
            base += "\n" + self.formatException(record.exc_info)
        return base


def _level(name, default):
    return getattr(logging, (name or default).upper(), logging.INFO)


def configure_logging(app):
    """
    Set up structured logging for the Flask app.

    Reads LOG_LEVEL from env (default: DEBUG in dev, INFO in prod) and
    ESCALATION_LOG_LEVEL (default: same as LOG_LEVEL).
    """
    is_testing = app.config.get("TESTING", False)
    is_prod = not app.config.get("DEBUG", False) and not is_testing

    level_name = os.getenv("LOG_LEVEL", "INFO" if is_prod else "DEBUG")
    level = _level(level_name, "INFO")

    formatter = JSONFormatter() if is_prod else ReadableFormatter()

    # Single root handler; clearing avoids duplicates across test apps
    root = logging.getLogger()
    root.handlers.clear()
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)
    handler.addFilter(RequestIdFilter())
    root.addHandler(handler)
    root.setLevel(level)

    escalation_level = os.getenv("ESCALATION_LOG_LEVEL")
    for name in ESCALATION_LOGGERS:
        # NOTSET defers to the root level
        logging.getLogger(name).setLevel(_level(escalation_level, level_name) if escalation_level else logging.NOTSET)

    for noisy in ("urllib3", "werkzeug", "sqlalchemy.engine"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    app.logger.setLevel(level)

    if not is_testing:
        app.logger.info("Logging configured: level=%s format=%s",
                        level_name, "JSON" if is_prod else "readable")
