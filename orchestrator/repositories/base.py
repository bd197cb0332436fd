"""
Repository interfaces.

Repository       — one aggregate table (customers, onboardings, tasks, ...)
AuditRepository  — the append-only audit ledger table

Implementations raise:
    PersistenceError — store rejected the write or is unreachable
    ConflictError    — unique key collision (audit dedup_key)
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager


class Repository(ABC):
    """CRUD surface used by the services.

    ``add``/``add_all``/``update`` stage changes; they become durable when the
    enclosing ``unit_of_work()`` block exits without an exception. All
    repositories built together share one unit of work.
    """

    @abstractmethod
    def add(self, entity):
        ...

    @abstractmethod
    def add_all(self, entities) -> list:
        ...

    @abstractmethod
    def get(self, entity_id: str):
        """Return the entity or None."""

    @abstractmethod
    def list_by(self, **filters) -> list:
        """Equality filters; a list/tuple/set value means "one of".

        Rows are returned oldest first (``created_at`` ascending).
        """

    @abstractmethod
    def update(self, entity, **changes):
        ...

    @abstractmethod
    def unit_of_work(self) -> AbstractContextManager:
        """Commit on clean exit, roll back everything staged on error."""


class AuditRepository(ABC):
    """Insert-only store for AuditRecord rows; every insert is its own transaction."""

    @abstractmethod
    def insert(self, record):
        ...

    @abstractmethod
    def insert_many(self, records) -> list:
        """All-or-nothing multi-row insert."""

    @abstractmethod
    def query(self, filters: dict, *, limit: int | None = None, offset: int = 0) -> list:
        """Conjunctive filters, most recent first."""

    @abstractmethod
    def count(self, filters: dict) -> int:
        ...
