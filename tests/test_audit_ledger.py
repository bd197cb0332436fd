"""
Onboarding Orchestrator
Tests — Audit Ledger.

Covers:
    - validation of entity/event types, payload shape, source/trigger
    - envelope enrichment (timestamp, environment, system_version, defaults)
    - dedup_key claims → ConflictError (in-memory and SQLite)
    - best-effort record/record_batch swallow ledger failures
    - query filters, pagination bounds, whole-day date_to
    - summarize counts, top entities, truncation at the cap
    - immutability of stored records
"""

from datetime import datetime, timedelta, timezone

import pytest

from orchestrator.core.exceptions import ConflictError, PersistenceError, ValidationError
from orchestrator.models import db
from orchestrator.models.audit import AuditRecord
from orchestrator.repositories.sqlalchemy import SqlAlchemyAuditRepository
from orchestrator.services.audit_ledger import AuditLedger
from tests.fakes import FixedClock, InMemoryAuditRepository


@pytest.fixture()
def clock():
    return FixedClock(datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc))


@pytest.fixture()
def ledger(clock):
    return AuditLedger(InMemoryAuditRepository(), environment="testing", system_version="1.2.3",
                       clock=clock)


def _status_change(ledger, task_id="t-1", onboarding_id="ob-1", **extra):
    metadata = {"onboarding_id": onboarding_id, "previous_status": "pending", "new_status": "in_progress"}
    metadata.update(extra)
    return ledger.append("task", task_id, "task_status_changed", metadata)


# ═════════════════════════════════════════════════════════════════════════════
# Validation & enrichment
# ═════════════════════════════════════════════════════════════════════════════

class TestAppend:
    def test_envelope_is_stamped(self, ledger, clock):
        record = _status_change(ledger)
        meta = record.event_metadata
        assert meta["timestamp"] == clock.now.isoformat()
        assert meta["environment"] == "testing"
        assert meta["system_version"] == "1.2.3"
        assert meta["source"] == "system"
        assert meta["trigger"] == "automated"
        assert record.onboarding_id == "ob-1"
        assert record.created_at == clock.now

    def test_caller_source_and_trigger_kept(self, ledger):
        record = _status_change(ledger, source="api", trigger="user_action")
        assert record.source == "api"
        assert record.event_metadata["trigger"] == "user_action"

    def test_caller_metadata_not_mutated(self, ledger):
        metadata = {"customer_name": "Acme"}
        ledger.append("customer", "c-1", "customer_created", metadata)
        assert metadata == {"customer_name": "Acme"}

    @pytest.mark.parametrize("entity_type,event_type", [
        ("invoice", "task_created"),
        ("task", "task_deleted"),
    ])
    def test_unknown_types_rejected(self, ledger, entity_type, event_type):
        with pytest.raises(ValidationError):
            ledger.append(entity_type, "x-1", event_type, {"onboarding_id": "ob-1"})
        assert ledger.repository.records == []

    def test_missing_payload_keys_rejected(self, ledger):
        with pytest.raises(ValidationError) as exc_info:
            ledger.append("task", "t-1", "task_status_changed", {"onboarding_id": "ob-1"})
        assert exc_info.value.details == {"previous_status": "required", "new_status": "required"}

    def test_entity_id_required(self, ledger):
        with pytest.raises(ValidationError):
            ledger.append("customer", "", "customer_created", {"customer_name": "Acme"})

    @pytest.mark.parametrize("field,value", [("source", "cron"), ("trigger", "manual")])
    def test_invalid_source_or_trigger(self, ledger, field, value):
        with pytest.raises(ValidationError):
            _status_change(ledger, **{field: value})

    def test_duplicate_dedup_key_conflicts(self, ledger):
        metadata = {"onboarding_id": "ob-1", "escalated_to": ["project_manager"],
                    "urgency_level": "high", "days_overdue": 4}
        ledger.append("escalation", "t-1", "escalation_triggered", metadata, dedup_key="t-1:x:2024-03-01")
        with pytest.raises(ConflictError):
            ledger.append("escalation", "t-1", "escalation_triggered", metadata,
                          dedup_key="t-1:x:2024-03-01")
        assert len(ledger.repository.records) == 1

    def test_batch_is_all_or_nothing_on_validation(self, ledger):
        entries = [
            {"entity_type": "customer", "entity_id": "c-1", "event_type": "customer_created",
             "metadata": {"customer_name": "Acme"}},
            {"entity_type": "customer", "entity_id": "c-1", "event_type": "not_an_event"},
        ]
        with pytest.raises(ValidationError):
            ledger.append_batch(entries)
        assert ledger.repository.records == []


class TestBestEffort:
    def test_record_swallows_store_failure(self, ledger):
        ledger.repository.fail = True
        assert ledger.record("customer", "c-1", "customer_created", {"customer_name": "Acme"}) is None

    def test_record_swallows_validation_failure(self, ledger):
        assert ledger.record("customer", "c-1", "customer_created", {}) is None

    def test_record_batch_returns_empty_on_failure(self, ledger):
        ledger.repository.fail = True
        entries = [{"entity_type": "customer", "entity_id": "c-1", "event_type": "customer_created",
                    "metadata": {"customer_name": "Acme"}}]
        assert ledger.record_batch(entries) == []

    def test_strict_append_propagates_store_failure(self, ledger):
        ledger.repository.fail = True
        with pytest.raises(PersistenceError):
            ledger.append("customer", "c-1", "customer_created", {"customer_name": "Acme"})


# ═════════════════════════════════════════════════════════════════════════════
# Queries
# ═════════════════════════════════════════════════════════════════════════════

class TestQuery:
    def test_most_recent_first(self, ledger, clock):
        first = _status_change(ledger, task_id="t-1")
        clock.advance(hours=1)
        second = _status_change(ledger, task_id="t-2")
        assert ledger.query() == [second, first]

    def test_filters_combine(self, ledger):
        _status_change(ledger, task_id="t-1", onboarding_id="ob-1")
        _status_change(ledger, task_id="t-2", onboarding_id="ob-2")
        ledger.append("customer", "c-1", "customer_created", {"customer_name": "Acme"})

        assert [r.entity_id for r in ledger.query({"onboarding_id": "ob-2"})] == ["t-2"]
        assert len(ledger.query({"entity_type": "task"})) == 2
        assert ledger.count({"event_type": "customer_created"}) == 1
        assert [r.entity_id for r in ledger.get_entity_trail("task", "t-1")] == ["t-1"]
        assert [r.entity_id for r in ledger.get_onboarding_trail("ob-1")] == ["t-1"]

    def test_limit_and_offset(self, ledger, clock):
        for n in range(5):
            _status_change(ledger, task_id=f"t-{n}")
            clock.advance(minutes=1)
        page = ledger.query({"limit": 2, "offset": 1})
        assert [r.entity_id for r in page] == ["t-3", "t-2"]

    @pytest.mark.parametrize("filters", [
        {"limit": 0}, {"limit": 1001}, {"limit": "many"}, {"offset": -1},
        {"colour": "blue"}, {"entity_type": "invoice"}, {"event_type": "nope"},
        {"date_from": "yesterday"},
    ])
    def test_invalid_filters(self, ledger, filters):
        with pytest.raises(ValidationError):
            ledger.query(filters)

    def test_date_to_covers_whole_day(self, ledger, clock):
        _status_change(ledger, task_id="t-1")
        clock.advance(days=1)
        _status_change(ledger, task_id="t-2")

        same_day = ledger.query({"date_to": "2024-03-01"})
        assert [r.entity_id for r in same_day] == ["t-1"]
        assert [r.entity_id for r in ledger.query({"date_from": "2024-03-02"})] == ["t-2"]


class TestSummarize:
    def test_counts_and_top_entities(self, ledger, clock):
        _status_change(ledger, task_id="t-1")
        _status_change(ledger, task_id="t-1")
        clock.advance(hours=2)
        ledger.append("customer", "c-1", "customer_created", {"customer_name": "Acme"})

        summary = ledger.summarize()

        assert summary["total_events"] == 3
        assert summary["events_by_type"] == {"task_status_changed": 2, "customer_created": 1}
        assert summary["events_by_entity"] == {"task": 2, "customer": 1}
        assert summary["most_active_entities"][0] == {"entity_type": "task", "entity_id": "t-1",
                                                      "event_count": 2}
        assert summary["date_range"] == {
            "earliest": "2024-03-01T09:00:00+00:00",
            "latest": "2024-03-01T11:00:00+00:00",
        }
        assert summary["truncated"] is False

    def test_empty(self, ledger):
        summary = ledger.summarize()
        assert summary["total_events"] == 0
        assert summary["date_range"] == {"earliest": None, "latest": None}

    def test_truncated_at_cap(self, clock):
        capped = AuditLedger(InMemoryAuditRepository(), summary_cap=3, clock=clock)
        for n in range(5):
            _status_change(capped, task_id=f"t-{n}")
        summary = capped.summarize()
        assert summary["total_events"] == 3
        assert summary["truncated"] is True


# ═════════════════════════════════════════════════════════════════════════════
# SQLite-backed ledger
# ═════════════════════════════════════════════════════════════════════════════

class TestSqlAlchemyLedger:
    @pytest.fixture()
    def db_ledger(self, clock):
        return AuditLedger(SqlAlchemyAuditRepository(), environment="testing", clock=clock)

    def test_round_trip_and_query(self, db_ledger, clock):
        _status_change(db_ledger, task_id="t-1")
        clock.advance(minutes=5)
        _status_change(db_ledger, task_id="t-2")
        assert [r.entity_id for r in db_ledger.query({"entity_type": "task"})] == ["t-2", "t-1"]
        assert db_ledger.count({"onboarding_id": "ob-1"}) == 2
        assert [r.entity_id for r in db_ledger.query({"date_to": "2024-03-01"})] == ["t-2", "t-1"]
        assert db_ledger.query({"date_from": "2024-03-02"}) == []

    def test_dedup_key_unique_constraint(self, db_ledger):
        metadata = {"onboarding_id": "ob-1", "escalated_to": ["owner"], "urgency_level": "high",
                    "days_overdue": 3}
        db_ledger.append("escalation", "t-1", "escalation_triggered", metadata, dedup_key="t-1:e:2024-03-01")
        with pytest.raises(ConflictError):
            db_ledger.append("escalation", "t-1", "escalation_triggered", metadata,
                             dedup_key="t-1:e:2024-03-01")
        assert db_ledger.count({"event_type": "escalation_triggered"}) == 1

    def test_records_cannot_be_updated(self, db_ledger):
        record = _status_change(db_ledger)
        record.event_type = "task_completed"
        with pytest.raises(ValueError, match="immutable"):
            db.session.flush()
        db.session.rollback()
        stored = db.session.get(AuditRecord, record.id)
        assert stored.event_type == "task_status_changed"

    def test_records_cannot_be_deleted(self, db_ledger):
        record = _status_change(db_ledger)
        db.session.delete(record)
        with pytest.raises(ValueError, match="cannot be deleted"):
            db.session.flush()
        db.session.rollback()
        assert db.session.get(AuditRecord, record.id) is not None

    def test_summary_over_database(self, db_ledger, clock):
        _status_change(db_ledger)
        clock.advance(days=1, hours=1)
        db_ledger.append("customer", "c-1", "customer_created", {"customer_name": "Acme"})
        summary = db_ledger.summarize()
        assert summary["total_events"] == 2
        assert summary["date_range"]["latest"] == (datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)
                                                   + timedelta(days=1, hours=1)).isoformat()
