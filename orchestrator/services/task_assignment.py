"""
Task Assignment Resolver.

Pure functions that decide who owns a generated task, how urgent it is and
when it is due. No I/O, no hidden state: identical inputs (and the same
``now``) always give identical outputs.

Functions:
    - assign_task:               owner role + contact from the rule tables
    - calculate_task_priority:   substring/category classification (total)
    - calculate_task_due_date:   base offset per task family, always in the future
    - generate_initial_tasks:    task drafts for a fresh onboarding intake
    - build_assignment_notification: subject/message for a new assignment
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone

from orchestrator.services.rule_tables import get_assignment_rule
from orchestrator.utils.helpers import parse_date

# Due-date offsets in days
_DEFAULT_DUE_DAYS = 7
_GO_LIVE_BUFFER_DAYS = 2
_GO_LIVE_DEFAULT_HORIZON_DAYS = 14


@dataclass(frozen=True)
class Assignment:
    owner_role: str
    assigned_to: str | None = None

    def to_dict(self) -> dict:
        return {"owner_role": self.owner_role, "assigned_to": self.assigned_to}


@dataclass
class TaskDraft:
    """A generated task before it is persisted."""
    task_type: str
    title: str
    owner_role: str
    assigned_to: str | None
    priority: str
    due_date: date
    description: str = ""
    metadata: dict = field(default_factory=dict)


def _first_contact(stakeholders, role: str) -> str | None:
    for stakeholder in stakeholders:
        if stakeholder.role == role:
            return stakeholder.email
    return None


def assign_task(task_type: str, stakeholders) -> Assignment:
    """Resolve the owning role and contact for a task type.

    Walks the rule's preferred roles in order and returns the first role
    that has a stakeholder (the first stakeholder of that role, in list
    order). Falls back to the rule's fallback role; ``assigned_to`` is None
    when nobody holds that role either.
    """
    stakeholders = list(stakeholders or [])
    rule = get_assignment_rule(task_type)

    for role in rule.preferred_roles:
        contact = _first_contact(stakeholders, role)
        if contact is not None:
            return Assignment(owner_role=role, assigned_to=contact)

    return Assignment(
        owner_role=rule.fallback_role,
        assigned_to=_first_contact(stakeholders, rule.fallback_role),
    )


def calculate_task_priority(task_type: str) -> str:
    """Classify a task type into low/medium/high/critical.

    security or SIS setup → critical; kickoff/requirements/go-live/setup →
    high; testing/planning → medium; anything else → medium.
    """
    task_type = task_type or ""
    if "security" in task_type or "sis_setup" in task_type:
        return "critical"
    if any(tag in task_type for tag in ("kickoff", "requirements", "go_live", "setup")):
        return "high"
    if "testing" in task_type or "planning" in task_type:
        return "medium"
    return "medium"


def _due_days(task_type: str, go_live_date, customer_size, now: datetime) -> int:
    if "kickoff" in task_type:
        return 1
    if "requirements" in task_type:
        return 2
    if "setup" in task_type:
        return 3 if "sis" in task_type else 5
    if "testing" in task_type:
        return 5 if "sis" in task_type else 7
    if "security" in task_type or "compliance" in task_type:
        return 5 if customer_size == "enterprise" else 7
    if "go_live" in task_type:
        go_live = parse_date(go_live_date)
        if go_live is None:
            return _GO_LIVE_DEFAULT_HORIZON_DAYS
        go_live_at = datetime.combine(go_live, time.min, tzinfo=now.tzinfo)
        days_until = math.floor((go_live_at - now).total_seconds() / 86400)
        return max(1, days_until - _GO_LIVE_BUFFER_DAYS)
    return _DEFAULT_DUE_DAYS


def calculate_task_due_date(task_type: str, go_live_date=None, customer_size=None,
                            now: datetime | None = None) -> datetime:
    """Return the due timestamp for a task, strictly after ``now``.

    Go-live preparation is due two days before the target go-live date
    (never less than one day out), or 14 days out when no date is given.
    """
    now = now or datetime.now(timezone.utc)
    days = _due_days(task_type or "", go_live_date, customer_size, now)
    return now + timedelta(days=days)


# ═════════════════════════════════════════════════════════════════════════════
# Initial task generation
# ═════════════════════════════════════════════════════════════════════════════

_BASE_TITLES = {
    "kickoff_meeting": ("Schedule kickoff meeting",
                        "Align stakeholders on scope, timeline and responsibilities."),
    "requirements_review": ("Review onboarding requirements",
                            "Confirm business requirements and success criteria."),
    "timeline_planning": ("Plan onboarding timeline",
                          "Build the milestone plan up to go-live."),
    "security_review": ("Complete security review",
                        "Review data handling, access control and encryption requirements."),
    "compliance_check": ("Complete compliance check",
                         "Confirm regulatory and contractual compliance obligations."),
    "go_live_preparation": ("Prepare for go-live",
                            "Run the go-live checklist and confirm readiness."),
}


def generate_initial_tasks(*, customer_size=None, go_live_date=None, stakeholders=(),
                           integrations=(), now: datetime | None = None) -> list[TaskDraft]:
    """Generate the onboarding task set for a new intake.

    kickoff always; setup + testing per integration; requirements review
    when an owner exists; timeline planning when a project manager exists;
    security review + compliance check for large/enterprise customers;
    go-live preparation always (last).
    """
    now = now or datetime.now(timezone.utc)
    stakeholders = list(stakeholders or [])
    roles = {s.role for s in stakeholders}

    planned: list[tuple[str, str, str, dict]] = []

    def _plan(task_type, title=None, description=None, **metadata):
        if any(p[0] == task_type for p in planned):
            return
        default_title, default_desc = _BASE_TITLES.get(task_type, (task_type, ""))
        planned.append((task_type, title or default_title, description or default_desc, metadata))

    _plan("kickoff_meeting")
    for integration in integrations or ():
        prefix = integration.type.lower()
        _plan(f"{prefix}_setup",
              title=f"Set up {integration.type} integration: {integration.name}",
              description=f"Configure credentials and connectivity for {integration.name}.",
              integration_name=integration.name)
        _plan(f"{prefix}_testing",
              title=f"Test {integration.type} integration: {integration.name}",
              description=f"Run connectivity, authentication and data-flow checks for {integration.name}.",
              integration_name=integration.name)
    if "owner" in roles:
        _plan("requirements_review")
    if "project_manager" in roles:
        _plan("timeline_planning")
    if customer_size in ("large", "enterprise"):
        _plan("security_review")
        _plan("compliance_check")
    _plan("go_live_preparation")

    drafts = []
    for task_type, title, description, metadata in planned:
        assignment = assign_task(task_type, stakeholders)
        drafts.append(TaskDraft(
            task_type=task_type,
            title=title,
            description=description,
            owner_role=assignment.owner_role,
            assigned_to=assignment.assigned_to,
            priority=calculate_task_priority(task_type),
            due_date=calculate_task_due_date(task_type, go_live_date, customer_size, now=now).date(),
            metadata=metadata,
        ))
    return drafts


def build_assignment_notification(task, stakeholder, customer_name: str) -> dict:
    """Subject/message/urgency for a new task assignment."""
    priority = task.priority or "medium"
    due = task.due_date.isoformat() if task.due_date else "Not specified"
    message = (
        f"Hello {stakeholder.name},\n\n"
        f"You have been assigned a new onboarding task for {customer_name}:\n\n"
        f"Task: {task.title}\n"
        f"Priority: {priority.upper()}\n"
        f"Due Date: {due}\n"
        f"Description: {task.description or 'No additional details provided'}\n\n"
        "Please log into the onboarding dashboard to view full details and update the task status."
    )
    return {
        "subject": f"New Task Assignment: {task.title} - {customer_name}",
        "message": message,
        "urgency": priority,
    }
