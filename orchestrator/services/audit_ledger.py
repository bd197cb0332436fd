"""
Audit Ledger — append-only record of every significant state change.

Two write paths:
    append / append_batch   strict: raise ValidationError, ConflictError or
                            PersistenceError; used where the record *is* the
                            operation (escalation claims).
    record / record_batch   best-effort: same validation, but ledger failures
                            are logged and swallowed so the domain operation
                            that already committed still succeeds.

Every record's metadata is stamped with timestamp, environment,
system_version, source (default "system") and trigger (default "automated").
Records are never updated or deleted.
"""

from __future__ import annotations

import logging
from collections import Counter
from datetime import datetime, time, timezone

from orchestrator.core.exceptions import ConflictError, PersistenceError, ValidationError
from orchestrator.models.audit import (
    AUDIT_ENTITY_TYPES,
    AUDIT_EVENT_TYPES,
    AUDIT_SOURCES,
    AUDIT_TRIGGERS,
    EVENT_PAYLOAD_SCHEMAS,
    AuditRecord,
)
from orchestrator.utils.helpers import parse_date, parse_datetime

logger = logging.getLogger(__name__)

MAX_QUERY_LIMIT = 1000
DEFAULT_QUERY_LIMIT = 100
DEFAULT_SUMMARY_CAP = 10000
TOP_ENTITIES = 10

_FILTER_KEYS = ("entity_type", "entity_id", "event_type", "onboarding_id", "source",
                "date_from", "date_to")


def _to_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _parse_bound(value, field, end_of_day=False):
    """Accept a date or timestamp; bare dates cover the whole day."""
    if value in (None, ""):
        return None
    if isinstance(value, str) and len(value) == 10:
        day = parse_date(value)
        if day is None:
            raise ValidationError(f"Invalid {field}: {value!r}", details={field: "expected ISO date"})
        return datetime.combine(day, time.max if end_of_day else time.min, tzinfo=timezone.utc)
    parsed = parse_datetime(value)
    if parsed is None:
        raise ValidationError(f"Invalid {field}: {value!r}", details={field: "expected ISO timestamp"})
    return _to_utc(parsed)


class AuditLedger:
    """Ledger service over an AuditRepository."""

    def __init__(self, repository, *, environment="development", system_version="unknown",
                 summary_cap=DEFAULT_SUMMARY_CAP, default_limit=DEFAULT_QUERY_LIMIT, clock=None):
        self.repository = repository
        self.environment = environment
        self.system_version = system_version
        self.summary_cap = summary_cap
        self.default_limit = default_limit
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    # ── Validation / enrichment ──────────────────────────────────────────

    def _build(self, entity_type, entity_id, event_type, metadata=None, dedup_key=None):
        if entity_type not in AUDIT_ENTITY_TYPES:
            raise ValidationError(f"Invalid entity_type: {entity_type!r}",
                                  details={"entity_type": entity_type})
        if event_type not in AUDIT_EVENT_TYPES:
            raise ValidationError(f"Invalid event_type: {event_type!r}",
                                  details={"event_type": event_type})
        if not entity_id:
            raise ValidationError("entity_id is required", details={"entity_id": "required"})

        metadata = dict(metadata or {})
        missing = [key for key in EVENT_PAYLOAD_SCHEMAS.get(event_type, ()) if key not in metadata]
        if missing:
            raise ValidationError(
                f"Metadata for {event_type} is missing: {', '.join(missing)}",
                details={key: "required" for key in missing},
            )

        source = metadata.get("source") or "system"
        trigger = metadata.get("trigger") or "automated"
        if source not in AUDIT_SOURCES:
            raise ValidationError(f"Invalid source: {source!r}", details={"source": source})
        if trigger not in AUDIT_TRIGGERS:
            raise ValidationError(f"Invalid trigger: {trigger!r}", details={"trigger": trigger})

        now = self._clock()
        metadata.update({
            "timestamp": now.isoformat(),
            "environment": self.environment,
            "system_version": self.system_version,
            "source": source,
            "trigger": trigger,
        })
        return AuditRecord(
            entity_type=entity_type,
            entity_id=str(entity_id),
            event_type=event_type,
            event_metadata=metadata,
            onboarding_id=metadata.get("onboarding_id"),
            source=source,
            dedup_key=dedup_key,
            created_at=now,
        )

    # ── Strict writes ────────────────────────────────────────────────────

    def append(self, entity_type, entity_id, event_type, metadata=None, *, dedup_key=None):
        """Validate, enrich and insert one record.

        Raises:
            ValidationError: unknown entity/event type or payload shape.
            ConflictError: ``dedup_key`` already claimed.
            PersistenceError: the store rejected the insert.
        """
        record = self._build(entity_type, entity_id, event_type, metadata, dedup_key)
        self.repository.insert(record)
        logger.debug("Audit %s on %s/%s", event_type, entity_type, entity_id,
                     extra={"event_type": event_type, "onboarding_id": record.onboarding_id})
        return record

    def append_batch(self, entries):
        """Insert many records in one statement; all or nothing.

        ``entries`` are dicts with entity_type, entity_id, event_type,
        metadata and optionally dedup_key. Validation runs for every entry
        before anything is written.
        """
        records = [
            self._build(e["entity_type"], e["entity_id"], e["event_type"],
                        e.get("metadata"), e.get("dedup_key"))
            for e in entries
        ]
        return self.repository.insert_many(records)

    # ── Best-effort writes ───────────────────────────────────────────────

    def record(self, entity_type, entity_id, event_type, metadata=None):
        try:
            return self.append(entity_type, entity_id, event_type, metadata)
        except (ValidationError, ConflictError, PersistenceError) as exc:
            logger.error("Audit logging failed for %s on %s/%s: %s",
                         event_type, entity_type, entity_id, exc,
                         extra={"event_type": event_type})
            return None

    def record_batch(self, entries):
        try:
            return self.append_batch(entries)
        except (ValidationError, ConflictError, PersistenceError) as exc:
            logger.error("Batch audit logging failed (%d records): %s", len(entries), exc)
            return []

    # ── Queries ──────────────────────────────────────────────────────────

    def _normalise_filters(self, filters):
        filters = dict(filters or {})
        unknown = set(filters) - set(_FILTER_KEYS) - {"limit", "offset"}
        if unknown:
            raise ValidationError(f"Unknown audit filter(s): {', '.join(sorted(unknown))}",
                                  details={key: "unsupported" for key in unknown})
        if filters.get("entity_type") and filters["entity_type"] not in AUDIT_ENTITY_TYPES:
            raise ValidationError(f"Invalid entity_type: {filters['entity_type']!r}",
                                  details={"entity_type": filters["entity_type"]})
        if filters.get("event_type") and filters["event_type"] not in AUDIT_EVENT_TYPES:
            raise ValidationError(f"Invalid event_type: {filters['event_type']!r}",
                                  details={"event_type": filters["event_type"]})
        normalised = {key: filters.get(key) for key in _FILTER_KEYS[:5] if filters.get(key)}
        date_from = _parse_bound(filters.get("date_from"), "date_from")
        date_to = _parse_bound(filters.get("date_to"), "date_to", end_of_day=True)
        if date_from is not None:
            normalised["date_from"] = date_from
        if date_to is not None:
            normalised["date_to"] = date_to
        return normalised

    def _pagination(self, limit, offset):
        try:
            limit = self.default_limit if limit in (None, "") else int(limit)
            offset = 0 if offset in (None, "") else int(offset)
        except (TypeError, ValueError) as exc:
            raise ValidationError("limit and offset must be integers",
                                  details={"limit": limit, "offset": offset}) from exc
        if not 1 <= limit <= MAX_QUERY_LIMIT:
            raise ValidationError(f"limit must be between 1 and {MAX_QUERY_LIMIT}",
                                  details={"limit": limit})
        if offset < 0:
            raise ValidationError("offset must be >= 0", details={"offset": offset})
        return limit, offset

    def query(self, filters=None):
        """Most-recent-first records matching every given filter.

        Supported keys: entity_type, entity_id, event_type, onboarding_id,
        source, date_from, date_to, limit (1-1000, default 100), offset (>= 0).
        """
        filters = dict(filters or {})
        limit, offset = self._pagination(filters.get("limit"), filters.get("offset"))
        return self.repository.query(self._normalise_filters(filters), limit=limit, offset=offset)

    def count(self, filters=None):
        filters = {k: v for k, v in (filters or {}).items() if k not in ("limit", "offset")}
        return self.repository.count(self._normalise_filters(filters))

    def get_entity_trail(self, entity_type, entity_id, limit=None):
        return self.query({"entity_type": entity_type, "entity_id": entity_id, "limit": limit})

    def get_onboarding_trail(self, onboarding_id, limit=None):
        return self.query({"onboarding_id": onboarding_id, "limit": limit})

    def summarize(self, filters=None):
        """Aggregate counts over up to ``summary_cap`` matching records.

        Records beyond the cap are not loaded; ``truncated`` says so.
        """
        filters = {k: v for k, v in (filters or {}).items() if k not in ("limit", "offset")}
        normalised = self._normalise_filters(filters)
        records = self.repository.query(normalised, limit=self.summary_cap, offset=0)
        truncated = len(records) >= self.summary_cap and self.repository.count(normalised) > self.summary_cap

        by_event = Counter(r.event_type for r in records)
        by_entity = Counter(r.entity_type for r in records)
        activity = Counter((r.entity_type, r.entity_id) for r in records)
        stamps = [_to_utc(r.created_at) for r in records if r.created_at]

        most_active = sorted(activity.items(), key=lambda item: (-item[1], item[0]))[:TOP_ENTITIES]
        return {
            "total_events": len(records),
            "events_by_type": dict(by_event),
            "events_by_entity": dict(by_entity),
            "date_range": {
                "earliest": min(stamps).isoformat() if stamps else None,
                "latest": max(stamps).isoformat() if stamps else None,
            },
            "most_active_entities": [
                {"entity_type": entity_type, "entity_id": entity_id, "event_count": count}
                for (entity_type, entity_id), count in most_active
            ],
            "truncated": truncated,
        }
