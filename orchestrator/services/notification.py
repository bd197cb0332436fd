"""
Onboarding Orchestrator
Notification Service — stakeholder notifications for blockers, escalations,
reminders, blocker resolution and new task assignments.

Builds the payload (subject, multi-line message, urgency, metadata) and
hands it to the NotificationGateway. Every public method returns a
NotificationResult and never raises.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field

from orchestrator.integrations.notification_gateway import NotificationResult
from orchestrator.services.escalation import blocker_urgency, build_escalation_notification
from orchestrator.services.task_assignment import build_assignment_notification

logger = logging.getLogger(__name__)

NOTIFICATION_TYPES = (
    "blocker_created", "task_escalated", "task_reminder", "blocker_resolved", "task_assigned",
)

_SIGNATURE = "Onboarding Orchestrator"


@dataclass
class NotificationPayload:
    type: str
    recipients: list[str]
    subject: str
    message: str
    urgency: str
    metadata: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return asdict(self)


def _due_text(task) -> str:
    return task.due_date.isoformat() if task.due_date else "Not specified"


def _priority(task) -> str:
    return (task.priority or "medium").upper()


def _lines(*parts) -> str:
    return "\n".join(parts).strip()


# ── Message generation ───────────────────────────────────────────────────────

def blocker_message(task, customer_name: str) -> str:
    return _lines(
        "TASK BLOCKED - IMMEDIATE ATTENTION REQUIRED",
        "",
        f"Customer: {customer_name}",
        f"Task: {task.title}",
        f"Type: {task.task_type}",
        f"Priority: {_priority(task)}",
        f"Current Owner: {task.assigned_to or task.owner_role}",
        "",
        f"BLOCKER REASON: {task.blocker_reason}",
        "",
        f"Due Date: {_due_text(task)}",
        "",
        "This task is currently blocked and requires immediate resolution to prevent "
        "delays in the customer onboarding process.",
        "",
        "Please log into the onboarding dashboard to review the blocker details and coordinate resolution.",
        "",
        _SIGNATURE,
    )


def reminder_message(task, customer_name: str, days_until_due: int) -> str:
    if days_until_due == 0:
        due_text = "today"
    elif days_until_due == 1:
        due_text = "tomorrow"
    else:
        due_text = f"in {days_until_due} days"
    return _lines(
        f"TASK REMINDER - DUE {due_text.upper()}",
        "",
        f"Customer: {customer_name}",
        f"Task: {task.title}",
        f"Type: {task.task_type}",
        f"Priority: {_priority(task)}",
        f"Due Date: {_due_text(task)}",
        "",
        f"This task is due {due_text}. Please ensure it is completed on time to maintain "
        "the customer's onboarding schedule.",
        "",
        "Please log into the onboarding dashboard to update the task status.",
        "",
        _SIGNATURE,
    )


def resolution_message(task, customer_name: str, resolution_notes: str | None = None) -> str:
    return _lines(
        "BLOCKER RESOLVED - TASK UNBLOCKED",
        "",
        f"Customer: {customer_name}",
        f"Task: {task.title}",
        f"Type: {task.task_type}",
        f"Priority: {_priority(task)}",
        "",
        "The blocker for this task has been resolved and the task is now ready to proceed.",
        "",
        f"Resolution Notes: {resolution_notes}" if resolution_notes else "",
        "",
        "Please log into the onboarding dashboard to continue work on this task.",
        "",
        _SIGNATURE,
    )


def _reminder_subject(task, customer_name, days_until_due):
    if days_until_due == 0:
        when = "Today"
    else:
        when = f"in {days_until_due} day{'s' if days_until_due > 1 else ''}"
    return f"[REMINDER] Task Due {when}: {task.title} - {customer_name}"


def _dedupe(values):
    seen = []
    for value in values:
        if value and value not in seen:
            seen.append(value)
    return seen


class NotificationService:
    """Builds notification payloads and delivers them through the gateway."""

    def __init__(self, gateway, escalation_gateway=None):
        self.gateway = gateway
        # Escalations may go to a dedicated workflow webhook
        self.escalation_gateway = escalation_gateway or gateway

    def send(self, payload: NotificationPayload, gateway=None) -> NotificationResult:
        if not payload.recipients:
            return NotificationResult(success=False, error="No valid recipients found")
        try:
            return (gateway or self.gateway).deliver(payload.to_dict())
        except Exception as exc:
            logger.exception("Notification delivery failed type=%s", payload.type)
            return NotificationResult(success=False, error=str(exc) or exc.__class__.__name__)

    def notify_blocker(self, task, customer_name, recipients, urgency=None) -> NotificationResult:
        """Blocker alert; ``urgency`` is the level decided by the escalation engine."""
        payload = NotificationPayload(
            type="blocker_created",
            recipients=_dedupe(recipients),
            subject=f"[BLOCKED] Task Blocked: {task.title} - {customer_name}",
            message=blocker_message(task, customer_name),
            urgency=urgency or blocker_urgency(task),
            metadata={
                "task_id": task.id,
                "onboarding_id": task.onboarding_id,
                "blocker_reason": task.blocker_reason,
                "task_type": task.task_type,
                "customer_name": customer_name,
            },
        )
        return self.send(payload, self.escalation_gateway)

    def notify_escalation(self, task, result, stakeholders, customer_name) -> NotificationResult:
        """Escalate an overdue task to the first stakeholder of each escalation role."""
        recipients = []
        for role in result.escalate_to:
            match = next((s for s in stakeholders if s.role == role), None)
            if match is not None:
                recipients.append(match.email)
        recipients = _dedupe(recipients)
        if not recipients:
            return NotificationResult(success=False, error="No valid recipients found for escalation")

        content = build_escalation_notification(task, result, customer_name)
        payload = NotificationPayload(
            type="task_escalated",
            recipients=recipients,
            subject=content["subject"],
            message=content["message"],
            urgency=content["urgency"],
            metadata={
                "task_id": task.id,
                "onboarding_id": task.onboarding_id,
                "days_overdue": result.days_overdue,
                "escalation_reason": result.escalation_reason,
                "task_type": task.task_type,
                "customer_name": customer_name,
            },
        )
        return self.send(payload, self.escalation_gateway)

    def send_task_reminder(self, task, stakeholder, customer_name, days_until_due) -> NotificationResult:
        payload = NotificationPayload(
            type="task_reminder",
            recipients=[stakeholder.email],
            subject=_reminder_subject(task, customer_name, days_until_due),
            message=reminder_message(task, customer_name, days_until_due),
            urgency="high" if days_until_due <= 1 else "medium",
            metadata={
                "task_id": task.id,
                "onboarding_id": task.onboarding_id,
                "days_until_due": days_until_due,
                "task_type": task.task_type,
                "customer_name": customer_name,
            },
        )
        return self.send(payload)

    def notify_blocker_resolution(self, task, stakeholders, customer_name,
                                  resolution_notes=None) -> NotificationResult:
        """Tell the assignee and the project manager that a blocker is gone."""
        project_manager = next((s for s in stakeholders if s.role == "project_manager"), None)
        recipients = _dedupe([task.assigned_to, project_manager.email if project_manager else None])
        if not recipients:
            return NotificationResult(
                success=False,
                error="No valid recipients found for blocker resolution notification",
            )
        payload = NotificationPayload(
            type="blocker_resolved",
            recipients=recipients,
            subject=f"[RESOLVED] Blocker Cleared: {task.title} - {customer_name}",
            message=resolution_message(task, customer_name, resolution_notes),
            urgency="medium",
            metadata={
                "task_id": task.id,
                "onboarding_id": task.onboarding_id,
                "resolution_notes": resolution_notes,
                "task_type": task.task_type,
                "customer_name": customer_name,
            },
        )
        return self.send(payload)

    def notify_task_assignment(self, task, stakeholder, customer_name) -> NotificationResult:
        content = build_assignment_notification(task, stakeholder, customer_name)
        payload = NotificationPayload(
            type="task_assigned",
            recipients=_dedupe([stakeholder.email]),
            subject=content["subject"],
            message=content["message"],
            urgency=content["urgency"],
            metadata={
                "task_id": task.id,
                "onboarding_id": task.onboarding_id,
                "task_type": task.task_type,
                "customer_name": customer_name,
            },
        )
        return self.send(payload)
