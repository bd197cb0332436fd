"""
In-memory collaborators for service tests.

    InMemoryStore           — shared tables + unit-of-work snapshot/rollback
    InMemoryRepository      — Repository over one table of the store
    InMemoryAuditRepository — insert-only ledger enforcing unique dedup_key
    RecordingGateway        — notification gateway that records payloads
    FixedClock              — settable "now"

build_memory_repositories() returns the same dict shape as
build_sqlalchemy_repositories(), so build_services() accepts either.
"""

from contextlib import contextmanager
from datetime import datetime, timedelta, timezone

from sqlalchemy import inspect

from orchestrator.core.exceptions import ConflictError, PersistenceError
from orchestrator.integrations.notification_gateway import NotificationResult
from orchestrator.repositories.base import AuditRepository, Repository


def _columns(entity):
    return [attr.key for attr in inspect(type(entity)).column_attrs]


def _sort_key(value):
    if value is None:
        return datetime.min
    return value.replace(tzinfo=None) if value.tzinfo is not None else value


class InMemoryStore:
    def __init__(self):
        self.tables = {}
        self.depth = 0
        self.fail_on = None  # table name whose next write raises PersistenceError
        self._snapshot = None

    def table(self, name):
        return self.tables.setdefault(name, {})

    def check(self, name):
        if self.fail_on == name:
            self.fail_on = None
            raise PersistenceError(f"Simulated failure writing {name}")

    def snapshot(self):
        self._snapshot = {
            name: {key: (entity, {c: getattr(entity, c) for c in _columns(entity)})
                   for key, entity in rows.items()}
            for name, rows in self.tables.items()
        }

    def restore(self):
        restored = {}
        for name, rows in self._snapshot.items():
            restored[name] = {}
            for key, (entity, values) in rows.items():
                for column, value in values.items():
                    setattr(entity, column, value)
                restored[name][key] = entity
        self.tables = restored


class InMemoryRepository(Repository):
    def __init__(self, store, name):
        self.store = store
        self.name = name

    @contextmanager
    def unit_of_work(self):
        if self.store.depth == 0:
            self.store.snapshot()
        self.store.depth += 1
        try:
            yield self
        except Exception:
            if self.store.depth == 1:
                self.store.restore()
            raise
        finally:
            self.store.depth -= 1

    def add(self, entity):
        self.store.check(self.name)
        self.store.table(self.name)[entity.id] = entity
        return entity

    def add_all(self, entities):
        entities = list(entities)
        self.store.check(self.name)
        for entity in entities:
            self.store.table(self.name)[entity.id] = entity
        return entities

    def get(self, entity_id):
        return self.store.table(self.name).get(entity_id)

    def list_by(self, **filters):
        def matches(entity):
            for key, value in filters.items():
                actual = getattr(entity, key)
                if isinstance(value, (list, tuple, set, frozenset)):
                    if actual not in value:
                        return False
                elif actual != value:
                    return False
            return True

        rows = [e for e in self.store.table(self.name).values() if matches(e)]
        return sorted(rows, key=lambda e: _sort_key(e.created_at))

    def update(self, entity, **changes):
        self.store.check(self.name)
        for key, value in changes.items():
            setattr(entity, key, value)
        return entity


class InMemoryAuditRepository(AuditRepository):
    def __init__(self):
        self.records = []
        self.fail = False

    def _claimed(self):
        return {r.dedup_key for r in self.records if r.dedup_key}

    def insert(self, record):
        return self.insert_many([record])[0]

    def insert_many(self, records):
        records = list(records)
        if self.fail:
            raise PersistenceError("Simulated audit store failure")
        claimed = self._claimed()
        for record in records:
            if record.dedup_key and record.dedup_key in claimed:
                raise ConflictError("AuditRecord", "dedup_key", record.dedup_key)
            claimed.add(record.dedup_key)
        self.records.extend(records)
        return records

    def _match(self, filters):
        selected = []
        for record in self.records:
            if any(filters.get(k) and getattr(record, k) != filters[k]
                   for k in ("entity_type", "entity_id", "event_type", "onboarding_id", "source")):
                continue
            created = _sort_key(record.created_at)
            if filters.get("date_from") is not None and created < _sort_key(filters["date_from"]):
                continue
            if filters.get("date_to") is not None and created > _sort_key(filters["date_to"]):
                continue
            selected.append(record)
        return selected

    def query(self, filters, *, limit=None, offset=0):
        # most recent first; insertion order breaks ties
        ordered = [r for _, r in sorted(enumerate(self._match(filters or {})),
                                        key=lambda item: (_sort_key(item[1].created_at), item[0]),
                                        reverse=True)]
        ordered = ordered[offset:]
        return ordered[:limit] if limit is not None else ordered

    def count(self, filters):
        return len(self._match(filters or {}))


def build_memory_repositories():
    store = InMemoryStore()
    repos = {name: InMemoryRepository(store, name)
             for name in ("customers", "onboardings", "tasks", "stakeholders", "integrations")}
    repos["audit"] = InMemoryAuditRepository()
    repos["store"] = store
    return repos


class RecordingGateway:
    """Stands in for NotificationGateway; every payload is kept in ``sent``."""

    def __init__(self, success=True, error=None):
        self.sent = []
        self.success = success
        self.error = error
        self.raises = None

    def deliver(self, payload):
        if self.raises is not None:
            raise self.raises
        self.sent.append(payload)
        if not self.success:
            return NotificationResult(success=False, error=self.error or "Webhook failed: HTTP 500",
                                      status_code=500)
        return NotificationResult(success=True, notification_id=f"test-{len(self.sent)}")

    def ping(self):
        return {"status": "not_configured", "latency_ms": 0}

    def of_type(self, notification_type):
        return [p for p in self.sent if p["type"] == notification_type]


class FixedClock:
    def __init__(self, now=None):
        self.now = now or datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)
        return self.now
