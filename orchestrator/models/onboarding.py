"""
Onboarding Orchestrator
Onboarding domain models.

Models:
    - Customer: contracted customer (intake data)
    - Onboarding: aggregate root tracking one customer from contract to go-live
    - OnboardingTask: unit of onboarding work (status, priority, owner, blocker)
    - Stakeholder: named contact with one of four fixed roles
    - Integration: external system connection with a lifecycle status
"""

from orchestrator.models import db
from orchestrator.models.base import EntityModel, iso

# ── Constants ────────────────────────────────────────────────────────────────

CUSTOMER_SIZES = ("small", "medium", "large", "enterprise")

ONBOARDING_STATUSES = ("not_started", "in_progress", "blocked", "completed")

STAKEHOLDER_ROLES = ("owner", "it_contact", "project_manager", "technical_lead")

TASK_STATUSES = ("pending", "in_progress", "completed", "blocked")
TASK_PRIORITIES = ("low", "medium", "high", "critical")

INTEGRATION_TYPES = ("SIS", "CRM", "SFTP", "API", "other")
INTEGRATION_STATUSES = ("not_configured", "configured", "testing", "active", "failed")


class Customer(EntityModel):
    __tablename__ = "customers"

    name = db.Column(db.String(200), nullable=False)
    contract_start_date = db.Column(db.Date, nullable=False)
    contact_email = db.Column(db.String(255), nullable=True)
    industry = db.Column(db.String(100), nullable=True)
    size = db.Column(db.String(20), nullable=True, comment="small | medium | large | enterprise")

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "contract_start_date": iso(self.contract_start_date),
            "contact_email": self.contact_email,
            "industry": self.industry,
            "size": self.size,
            "created_at": iso(self.created_at),
        }

    def __repr__(self):
        return f"<Customer {self.id}: {self.name}>"


class Onboarding(EntityModel):
    """
    Aggregate root for tasks, stakeholders and integrations.

    ``status`` moves to ``blocked`` while any task carries a blocker and back
    to ``in_progress`` once the last blocker is resolved.
    """

    __tablename__ = "onboardings"
    _defaults = {"status": "not_started"}

    customer_id = db.Column(
        db.String(36), db.ForeignKey("customers.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    status = db.Column(db.String(20), nullable=False, default="not_started")
    current_stage = db.Column(db.String(100), nullable=True)
    go_live_date = db.Column(db.Date, nullable=True)
    time_to_value_days = db.Column(db.Integer, nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self):
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "status": self.status,
            "current_stage": self.current_stage,
            "go_live_date": iso(self.go_live_date),
            "time_to_value_days": self.time_to_value_days,
            "created_at": iso(self.created_at),
            "completed_at": iso(self.completed_at),
        }

    def __repr__(self):
        return f"<Onboarding {self.id}: {self.status}>"


class OnboardingTask(EntityModel):
    """
    Onboarding task.

    Invariants (enforced in TaskService before any write):
      - is_blocker → blocker_reason is non-empty
      - status == completed → completed_at set and is_blocker False
    """

    __tablename__ = "onboarding_tasks"
    __table_args__ = (
        db.Index("idx_task_onboarding_status", "onboarding_id", "status"),
    )
    _defaults = {"status": "pending", "priority": "medium", "is_blocker": False}

    onboarding_id = db.Column(
        db.String(36), db.ForeignKey("onboardings.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    task_type = db.Column(db.String(60), nullable=False, comment="Rule-table key, e.g. sis_setup")
    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, nullable=True)
    owner_role = db.Column(db.String(30), nullable=False)
    assigned_to = db.Column(db.String(255), nullable=True, comment="Stakeholder contact (email)")
    status = db.Column(db.String(20), nullable=False, default="pending")
    priority = db.Column(db.String(20), nullable=False, default="medium")
    due_date = db.Column(db.Date, nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    is_blocker = db.Column(db.Boolean, nullable=False, default=False)
    blocker_reason = db.Column(db.Text, nullable=True)

    def to_dict(self):
        return {
            "id": self.id,
            "onboarding_id": self.onboarding_id,
            "task_type": self.task_type,
            "title": self.title,
            "description": self.description,
            "owner_role": self.owner_role,
            "assigned_to": self.assigned_to,
            "status": self.status,
            "priority": self.priority,
            "due_date": iso(self.due_date),
            "completed_at": iso(self.completed_at),
            "is_blocker": self.is_blocker,
            "blocker_reason": self.blocker_reason,
            "created_at": iso(self.created_at),
        }

    def __repr__(self):
        return f"<OnboardingTask {self.id}: {self.task_type} [{self.status}]>"


class Stakeholder(EntityModel):
    __tablename__ = "stakeholders"
    _defaults = {"responsibilities": list}

    onboarding_id = db.Column(
        db.String(36), db.ForeignKey("onboardings.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    role = db.Column(db.String(30), nullable=False, comment="owner | it_contact | project_manager | technical_lead")
    name = db.Column(db.String(200), nullable=False)
    email = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(50), nullable=True)
    responsibilities = db.Column(db.JSON, nullable=False, default=list)

    def to_dict(self):
        return {
            "id": self.id,
            "onboarding_id": self.onboarding_id,
            "role": self.role,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "responsibilities": list(self.responsibilities or []),
            "created_at": iso(self.created_at),
        }

    def __repr__(self):
        return f"<Stakeholder {self.id}: {self.role} {self.email}>"


class Integration(EntityModel):
    """
    External system connection.

    ``status`` only changes from validation through
    IntegrationService.apply_validation; manual updates are audited.
    """

    __tablename__ = "integrations"
    _defaults = {"status": "not_configured", "configuration": dict}

    onboarding_id = db.Column(
        db.String(36), db.ForeignKey("onboardings.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    type = db.Column(db.String(10), nullable=False, comment="SIS | CRM | SFTP | API | other")
    name = db.Column(db.String(200), nullable=False)
    configuration = db.Column(db.JSON, nullable=False, default=dict)
    status = db.Column(db.String(20), nullable=False, default="not_configured")
    test_results = db.Column(db.JSON, nullable=True)

    def to_dict(self, include_configuration=True):
        data = {
            "id": self.id,
            "onboarding_id": self.onboarding_id,
            "type": self.type,
            "name": self.name,
            "status": self.status,
            "test_results": self.test_results,
            "created_at": iso(self.created_at),
        }
        if include_configuration:
            data["configuration"] = dict(self.configuration or {})
        return data

    def __repr__(self):
        return f"<Integration {self.id}: {self.type} [{self.status}]>"
