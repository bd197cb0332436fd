"""
EntityModel — abstract base class for onboarding aggregate tables.

All domain models inherit from EntityModel instead of db.Model directly.
This adds:
  - string UUID primary key generated on construction
  - created_at timestamp (UTC)
  - Python-side defaults applied in __init__, so transient instances used
    by the pure rule engines and the in-memory repositories look the same
    as rows loaded from the database
"""

import uuid
from datetime import datetime, timezone

from orchestrator.models import db


def _uuid() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def iso(value):
    """Serialise a date/datetime (or None) for ``to_dict`` payloads."""
    return value.isoformat() if value else None


class EntityModel(db.Model):
    """Abstract base for onboarding entities."""
    __abstract__ = True

    # Column name -> default value (callables are invoked per instance)
    _defaults = {}

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    def __init__(self, **kwargs):
        kwargs.setdefault("id", _uuid())
        kwargs.setdefault("created_at", _utcnow())
        for key, value in self._defaults.items():
            if kwargs.get(key) is None:
                kwargs[key] = value() if callable(value) else value
        super().__init__(**kwargs)
