"""
SQLAlchemy repositories backed by Flask-SQLAlchemy's ``db.session``.

All repositories share the scoped session, so one ``unit_of_work()`` block
covers every table: rows are flushed as they are staged (constraint errors
surface early) and committed once when the outermost block exits.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from orchestrator.core.exceptions import ConflictError, PersistenceError
from orchestrator.models import db
from orchestrator.models.audit import AuditRecord
from orchestrator.models.onboarding import (
    Customer,
    Integration,
    Onboarding,
    OnboardingTask,
    Stakeholder,
)
from orchestrator.repositories.base import AuditRepository, Repository

logger = logging.getLogger(__name__)


class _TransactionState(threading.local):
    """Per-thread nesting depth of the shared unit of work."""

    def __init__(self):
        self.depth = 0


class SqlAlchemyRepository(Repository):
    def __init__(self, model, state: _TransactionState | None = None):
        self.model = model
        self._state = state or _TransactionState()

    # ── Unit of work ─────────────────────────────────────────────────────

    @contextmanager
    def unit_of_work(self):
        self._state.depth += 1
        try:
            yield self
            if self._state.depth == 1:
                db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.exception("Unit of work rolled back (%s)", self.model.__name__)
            raise PersistenceError(f"Database error: {exc.__class__.__name__}") from exc
        except Exception:
            db.session.rollback()
            raise
        finally:
            self._state.depth -= 1

    def _stage(self):
        """Flush inside a unit of work, commit otherwise."""
        try:
            if self._state.depth:
                db.session.flush()
            else:
                db.session.commit()
        except SQLAlchemyError as exc:
            if not self._state.depth:
                db.session.rollback()
                logger.exception("Write failed (%s)", self.model.__name__)
                raise PersistenceError(f"Database error: {exc.__class__.__name__}") from exc
            raise

    # ── CRUD ─────────────────────────────────────────────────────────────

    def add(self, entity):
        db.session.add(entity)
        self._stage()
        return entity

    def add_all(self, entities):
        entities = list(entities)
        db.session.add_all(entities)
        self._stage()
        return entities

    def get(self, entity_id):
        if not entity_id:
            return None
        try:
            return db.session.get(self.model, entity_id)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Database error: {exc.__class__.__name__}") from exc

    def list_by(self, **filters):
        stmt = select(self.model)
        for name, value in filters.items():
            column = getattr(self.model, name)
            if isinstance(value, (list, tuple, set, frozenset)):
                stmt = stmt.where(column.in_(list(value)))
            else:
                stmt = stmt.where(column == value)
        stmt = stmt.order_by(self.model.created_at.asc())
        try:
            return list(db.session.execute(stmt).scalars().all())
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Database error: {exc.__class__.__name__}") from exc

    def update(self, entity, **changes):
        for name, value in changes.items():
            setattr(entity, name, value)
        self._stage()
        return entity


# ═════════════════════════════════════════════════════════════════════════════
# Audit ledger storage
# ═════════════════════════════════════════════════════════════════════════════

def _is_dedup_violation(exc: IntegrityError) -> bool:
    return "dedup_key" in str(exc.orig)


class SqlAlchemyAuditRepository(AuditRepository):
    def _commit(self, records):
        try:
            db.session.commit()
        except IntegrityError as exc:
            db.session.rollback()
            if _is_dedup_violation(exc):
                key = records[0].dedup_key if len(records) == 1 else None
                logger.info("Audit dedup key already claimed: %s", key)
                raise ConflictError("AuditRecord", "dedup_key", key) from exc
            logger.warning("Integrity error on audit insert: %s", exc.orig)
            raise PersistenceError("Audit insert violated a constraint") from exc
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.exception("Audit insert failed")
            raise PersistenceError(f"Database error: {exc.__class__.__name__}") from exc

    def insert(self, record):
        db.session.add(record)
        self._commit([record])
        return record

    def insert_many(self, records):
        records = list(records)
        if not records:
            return []
        db.session.add_all(records)
        self._commit(records)
        return records

    @staticmethod
    def _apply_filters(stmt, filters):
        for name in ("entity_type", "entity_id", "event_type", "onboarding_id", "source"):
            value = filters.get(name)
            if value:
                stmt = stmt.where(getattr(AuditRecord, name) == value)
        if filters.get("date_from") is not None:
            stmt = stmt.where(AuditRecord.created_at >= filters["date_from"])
        if filters.get("date_to") is not None:
            stmt = stmt.where(AuditRecord.created_at <= filters["date_to"])
        return stmt

    def query(self, filters, *, limit=None, offset=0):
        stmt = self._apply_filters(select(AuditRecord), filters or {})
        stmt = stmt.order_by(AuditRecord.created_at.desc(), AuditRecord.id.desc())
        if offset:
            stmt = stmt.offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        try:
            return list(db.session.execute(stmt).scalars().all())
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Database error: {exc.__class__.__name__}") from exc

    def count(self, filters):
        stmt = self._apply_filters(select(func.count(AuditRecord.id)), filters or {})
        try:
            return db.session.execute(stmt).scalar_one()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Database error: {exc.__class__.__name__}") from exc


def build_sqlalchemy_repositories() -> dict:
    """Repositories for every table, sharing one unit of work."""
    state = _TransactionState()
    return {
        "customers": SqlAlchemyRepository(Customer, state),
        "onboardings": SqlAlchemyRepository(Onboarding, state),
        "tasks": SqlAlchemyRepository(OnboardingTask, state),
        "stakeholders": SqlAlchemyRepository(Stakeholder, state),
        "integrations": SqlAlchemyRepository(Integration, state),
        "audit": SqlAlchemyAuditRepository(),
    }
