"""orchestrator.repositories — persistence collaborators.

Services never touch ``db.session`` directly; they receive repositories
built by ``build_sqlalchemy_repositories()`` (or in-memory fakes in tests).
"""

from orchestrator.repositories.base import AuditRepository, Repository
from orchestrator.repositories.sqlalchemy import (
    SqlAlchemyAuditRepository,
    SqlAlchemyRepository,
    build_sqlalchemy_repositories,
)

__all__ = [
    "AuditRepository",
    "Repository",
    "SqlAlchemyAuditRepository",
    "SqlAlchemyRepository",
    "build_sqlalchemy_repositories",
]
