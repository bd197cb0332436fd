"""
Onboarding Orchestrator
Tests — logging configuration.

Covers:
    - request id copied from ``g`` onto records inside a request
    - onboarding context rendered by both formatters
    - ESCALATION_LOG_LEVEL applied to the escalation loggers
"""

import json
import logging

from flask import g

from orchestrator.middleware.logging_config import (
    ESCALATION_LOGGERS,
    JSONFormatter,
    ReadableFormatter,
    RequestIdFilter,
    configure_logging,
)


def _record(**extra):
    record = logging.LogRecord("orchestrator.services.escalation", logging.INFO, __file__, 1,
                               "Blocked task escalated", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestRequestIdFilter:
    def test_copies_request_id_inside_request(self, app):
        record = _record()
        with app.test_request_context("/api/v1/health"):
            g.request_id = "req-42"
            assert RequestIdFilter().filter(record) is True
        assert record.request_id == "req-42"

    def test_without_request_id_leaves_record_alone(self):
        record = _record()
        assert RequestIdFilter().filter(record) is True
        assert not hasattr(record, "request_id")


class TestFormatters:
    def test_readable_appends_short_context(self):
        record = _record(onboarding_id="0123456789abcdef", task_id="fedcba9876543210", urgency="high")
        assert ReadableFormatter.context(record) == " [onboarding=01234567 task=fedcba98 urgency=high]"
        assert ReadableFormatter.context(_record()) == ""

    def test_json_carries_context_keys(self):
        record = _record(onboarding_id="ob-1", urgency="critical", request_id="req-1")
        entry = json.loads(JSONFormatter().format(record))
        assert entry["onboarding_id"] == "ob-1"
        assert entry["urgency"] == "critical"
        assert entry["request_id"] == "req-1"
        assert "task_id" not in entry


class TestConfigureLogging:
    def test_escalation_level_override(self, app, monkeypatch):
        monkeypatch.setenv("ESCALATION_LOG_LEVEL", "warning")
        try:
            configure_logging(app)
            for name in ESCALATION_LOGGERS:
                assert logging.getLogger(name).level == logging.WARNING
        finally:
            monkeypatch.delenv("ESCALATION_LOG_LEVEL")
            configure_logging(app)
        assert logging.getLogger(ESCALATION_LOGGERS[0]).level == logging.NOTSET
