"""
Onboarding Orchestrator
Audit domain model.

Models:
    - AuditRecord: immutable, append-only ledger entry for every significant
      state change.
"""

from sqlalchemy import event

from orchestrator.models import db
from orchestrator.models.base import EntityModel, iso

# ── Constants ────────────────────────────────────────────────────────────────

AUDIT_ENTITY_TYPES = (
    "customer", "onboarding", "task", "stakeholder",
    "integration", "blocker", "escalation", "system",
)

AUDIT_EVENT_TYPES = (
    # Customer and onboarding
    "customer_created",
    "onboarding_created",
    "onboarding_status_changed",
    "onboarding_completed",
    "go_live_date_updated",
    # Task
    "task_created",
    "task_assigned",
    "task_status_changed",
    "task_completed",
    "task_overdue",
    # Stakeholder
    "stakeholder_created",
    "stakeholder_updated",
    "stakeholder_assigned",
    # Integration
    "integration_created",
    "integration_configured",
    "integration_tested",
    "integration_activated",
    "integration_failed",
    # Blocker and escalation
    "blocker_created",
    "blocker_resolved",
    "blocker_escalated",
    "escalation_triggered",
    "escalation_resolved",
    # System
    "system_error",
    "workflow_triggered",
    "notification_sent",
    "health_check_failed",
)

AUDIT_SOURCES = ("api", "ui", "webhook", "system", "external")
AUDIT_TRIGGERS = ("user_action", "automated", "scheduled", "webhook")

# Event type -> keys the metadata envelope must carry for that event.
# Any other key is accepted as free-form context (notes, previous_value, ...).
EVENT_PAYLOAD_SCHEMAS = {
    "customer_created": ("customer_name",),
    "onboarding_created": ("customer_id",),
    "onboarding_status_changed": ("onboarding_id", "previous_status", "new_status"),
    "onboarding_completed": ("onboarding_id",),
    "go_live_date_updated": ("onboarding_id", "go_live_date"),
    "task_created": ("onboarding_id", "task_type", "owner_role"),
    "task_assigned": ("onboarding_id", "assigned_to"),
    "task_status_changed": ("onboarding_id", "previous_status", "new_status"),
    "task_completed": ("onboarding_id",),
    "task_overdue": ("onboarding_id", "days_overdue"),
    "stakeholder_created": ("onboarding_id", "role"),
    "stakeholder_updated": ("onboarding_id", "changed_fields"),
    "stakeholder_assigned": ("onboarding_id",),
    "integration_created": ("onboarding_id", "integration_type"),
    "integration_configured": ("onboarding_id",),
    "integration_tested": ("onboarding_id", "overall_status", "completion_percentage"),
    "integration_activated": ("onboarding_id",),
    "integration_failed": ("onboarding_id",),
    "blocker_created": ("onboarding_id", "blocker_reason"),
    "blocker_resolved": ("onboarding_id",),
    "blocker_escalated": ("onboarding_id", "escalated_to", "urgency_level"),
    "escalation_triggered": ("onboarding_id", "escalated_to", "urgency_level", "days_overdue"),
    "escalation_resolved": ("onboarding_id",),
    "system_error": ("error_message",),
    "workflow_triggered": (),
    "notification_sent": ("notification_type", "success"),
    "health_check_failed": (),
}


class AuditRecord(EntityModel):
    """
    Immutable audit ledger entry.

    ``event_metadata`` is stored in the ``metadata`` column (the attribute
    name ``metadata`` is reserved by SQLAlchemy). ``onboarding_id`` and
    ``source`` are copied out of the envelope so they can be filtered with
    plain column predicates. ``dedup_key`` is unique when set: it turns
    once-per-day escalations into idempotent inserts.
    """

    __tablename__ = "events_audit"
    __table_args__ = (
        db.Index("idx_audit_entity", "entity_type", "entity_id"),
        db.Index("idx_audit_event", "event_type"),
        db.Index("idx_audit_created", "created_at"),
    )

    entity_type = db.Column(db.String(30), nullable=False)
    entity_id = db.Column(db.String(64), nullable=False)
    event_type = db.Column(db.String(60), nullable=False)
    event_metadata = db.Column("metadata", db.JSON, nullable=False, default=dict)
    onboarding_id = db.Column(db.String(64), nullable=True, index=True)
    source = db.Column(db.String(20), nullable=True, index=True)
    dedup_key = db.Column(db.String(200), nullable=True, unique=True)

    def to_dict(self):
        return {
            "id": self.id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "event_type": self.event_type,
            "metadata": dict(self.event_metadata or {}),
            "created_at": iso(self.created_at),
        }

    def __repr__(self):
        return f"<AuditRecord {self.id}: {self.event_type} on {self.entity_type}/{self.entity_id}>"


@event.listens_for(AuditRecord, "before_update")
def _reject_audit_update(mapper, connection, target):
    raise ValueError(f"AuditRecord {target.id} is immutable")


@event.listens_for(AuditRecord, "before_delete")
def _reject_audit_delete(mapper, connection, target):
    raise ValueError(f"AuditRecord {target.id} cannot be deleted")
