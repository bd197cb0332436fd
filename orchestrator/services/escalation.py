"""
Escalation Engine — overdue and blocker escalation.

Pure part (no I/O, ``today`` injectable):
    should_escalate_task              overdue verdict + tier + recipients (roles)
    get_blocker_escalation_recipients successor contacts + urgency for a blocker
    find_tasks_needing_escalation     batch filter (completed tasks never returned)
    build_escalation_notification     subject/message/urgency

Orchestration (EscalationService):
    process_onboarding / process_active_onboardings
        overdue tasks → escalation_triggered, blocked tasks → blocker_escalated.
        Each escalation is claimed first by appending an audit record with a
        unique dedup key ``{task_id}:{event_type}:{YYYY-MM-DD}``; a ConflictError
        means the task was already escalated today and it is skipped. The
        notification is sent after the claim and its outcome is recorded as
        notification_sent.
    send_due_reminders
        task_reminder notifications for open tasks due within N days.

Usage:
    from orchestrator.services.escalation import should_escalate_task
    result = should_escalate_task(task, today=date(2024, 3, 10))
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone

from orchestrator.core.exceptions import ConflictError, NotFoundError, PersistenceError, ValidationError
from orchestrator.services.rule_tables import (
    BLOCKER_ESCALATION_MAP,
    DEFAULT_BLOCKER_ESCALATION,
    MAX_ESCALATION_TIER,
    RULES_VERSION,
    get_escalation_rule,
)
from orchestrator.utils.helpers import parse_date

logger = logging.getLogger(__name__)

ACTIVE_ONBOARDING_STATUSES = ("in_progress", "blocked")
UNKNOWN_CUSTOMER = "Unknown Customer"


@dataclass
class EscalationResult:
    should_escalate: bool
    escalate_to: list[str] = field(default_factory=list)  # roles, least severe first
    urgency_level: str = "low"
    escalation_reason: str = ""
    days_overdue: int = 0
    tier: int | None = None

    def to_dict(self) -> dict:
        return {
            "should_escalate": self.should_escalate,
            "escalate_to": list(self.escalate_to),
            "urgency_level": self.urgency_level,
            "escalation_reason": self.escalation_reason,
            "days_overdue": self.days_overdue,
            "tier": self.tier,
        }


@dataclass
class BlockerEscalation:
    escalate_to: list[str]  # contacts
    urgency_level: str
    roles: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "escalate_to": list(self.escalate_to),
            "urgency_level": self.urgency_level,
            "roles": list(self.roles),
        }


def _today() -> date:
    return datetime.now(timezone.utc).date()


# ═════════════════════════════════════════════════════════════════════════════
# Rule evaluation
# ═════════════════════════════════════════════════════════════════════════════

def should_escalate_task(task, today: date | None = None) -> EscalationResult:
    """Decide whether an overdue task must be escalated, and how far.

    Days overdue are counted on calendar days. At or above the rule
    threshold the tier grows with lateness: 2x threshold reaches the middle
    of the chain, 3x the top (capped by chain length).
    """
    if task.status == "completed":
        return EscalationResult(False, escalation_reason="Task completed")

    due = parse_date(task.due_date)
    if due is None:
        return EscalationResult(False, escalation_reason="No due date set")

    today = today or _today()
    days_overdue = (today - due).days
    if days_overdue <= 0:
        return EscalationResult(False, escalation_reason="Task not overdue")

    rule = get_escalation_rule(task.task_type)
    threshold = rule.overdue_threshold_days
    if days_overdue < threshold:
        return EscalationResult(
            False,
            escalation_reason=(f"Task overdue by {days_overdue} days, "
                               f"but below threshold of {threshold} days"),
            days_overdue=days_overdue,
        )

    top = len(rule.escalation_chain) - 1
    if days_overdue >= threshold * 3:
        tier = min(top, MAX_ESCALATION_TIER)
    elif days_overdue >= threshold * 2:
        tier = min(top, 1)
    else:
        tier = 0

    return EscalationResult(
        True,
        escalate_to=list(rule.escalation_chain[:tier + 1]),
        urgency_level=rule.urgency_level,
        escalation_reason=f"Task overdue by {days_overdue} days (threshold: {threshold} days)",
        days_overdue=days_overdue,
        tier=tier,
    )


def blocker_urgency(task) -> str:
    task_type = task.task_type or ""
    if task.priority == "critical" or "security" in task_type or "sis" in task_type:
        return "critical"
    if task.priority == "high" or "setup" in task_type or "go_live" in task_type:
        return "high"
    if task.priority == "low":
        return "low"
    return "medium"


def get_blocker_escalation_recipients(task, stakeholders) -> BlockerEscalation:
    """Contacts one step up from the blocked task's owner role.

    Roles with no stakeholder are dropped; the first stakeholder of each
    role (list order) is used.
    """
    roles = list(BLOCKER_ESCALATION_MAP.get(task.owner_role, DEFAULT_BLOCKER_ESCALATION))
    contacts = []
    for role in roles:
        match = next((s for s in stakeholders if s.role == role), None)
        if match is not None and match.email not in contacts:
            contacts.append(match.email)
    return BlockerEscalation(escalate_to=contacts, urgency_level=blocker_urgency(task), roles=roles)


def find_tasks_needing_escalation(tasks, today: date | None = None) -> list[tuple]:
    """``(task, EscalationResult)`` for every open task due for escalation."""
    today = today or _today()
    found = []
    for task in tasks:
        if task.status == "completed":
            continue
        result = should_escalate_task(task, today=today)
        if result.should_escalate:
            found.append((task, result))
    return found


def build_escalation_notification(task, result: EscalationResult, customer_name: str,
                                  is_blocker: bool = False) -> dict:
    kind = "BLOCKED" if is_blocker else "OVERDUE"
    detail = (f"BLOCKER REASON: {task.blocker_reason}" if is_blocker
              else f"OVERDUE: {result.days_overdue} days past due date")
    due = task.due_date.isoformat() if task.due_date else "Not specified"
    message = "\n".join([
        "TASK ESCALATION NOTICE",
        "",
        f"Customer: {customer_name}",
        f"Task: {task.title}",
        f"Type: {task.task_type}",
        f"Priority: {(task.priority or 'medium').upper()}",
        f"Current Owner: {task.assigned_to or task.owner_role}",
        "",
        detail,
        "",
        f"Due Date: {due}",
        f"Escalation Reason: {result.escalation_reason}",
        "",
        "This task requires immediate attention to prevent further delays in the "
        "customer onboarding process.",
        "",
        "Please log into the onboarding dashboard to review and take action.",
        "",
        "Onboarding Orchestrator",
    ])
    return {
        "subject": f"[{kind}] Task Escalation: {task.title} - {customer_name}",
        "message": message,
        "urgency": result.urgency_level,
    }


def escalation_dedup_key(task_id: str, event_type: str, day: date) -> str:
    return f"{task_id}:{event_type}:{day.isoformat()}"


# ═════════════════════════════════════════════════════════════════════════════
# Orchestration
# ═════════════════════════════════════════════════════════════════════════════

class EscalationService:
    """Runs escalation checks against stored onboardings."""

    def __init__(self, *, customers, onboardings, tasks, stakeholders, ledger, notifier,
                 reminder_window_days=2):
        self.customers = customers
        self.onboardings = onboardings
        self.tasks = tasks
        self.stakeholders = stakeholders
        self.ledger = ledger
        self.notifier = notifier
        self.reminder_window_days = reminder_window_days

    def _load(self, onboarding_id):
        onboarding = self.onboardings.get(onboarding_id)
        if onboarding is None:
            raise NotFoundError(resource="Onboarding", resource_id=onboarding_id)
        customer = self.customers.get(onboarding.customer_id)
        customer_name = customer.name if customer is not None else UNKNOWN_CUSTOMER
        stakeholders = self.stakeholders.list_by(onboarding_id=onboarding_id)
        return onboarding, customer_name, stakeholders

    def _claim(self, task, event_type, metadata, today):
        """Append the claiming audit record; False when already claimed today."""
        key = escalation_dedup_key(task.id, event_type, today)
        try:
            self.ledger.append("escalation", task.id, event_type, metadata, dedup_key=key)
        except ConflictError:
            logger.info("Escalation already claimed today: %s", key,
                        extra={"task_id": task.id, "event_type": event_type})
            return False
        return True

    def _record_delivery(self, task, notification_type, result):
        self.ledger.record("system", task.id, "notification_sent", {
            "onboarding_id": task.onboarding_id,
            "task_id": task.id,
            "notification_type": notification_type,
            "success": result.success,
            "notification_id": result.notification_id,
            "error": result.error,
        })

    # ── Single-task escalations ──────────────────────────────────────────

    def escalate_overdue(self, task, result, stakeholders, customer_name, today):
        """Claim, notify, record. Returns True when a new escalation happened."""
        claimed = self._claim(task, "escalation_triggered", {
            "escalation_type": "task_overdue",
            "onboarding_id": task.onboarding_id,
            "escalated_to": list(result.escalate_to),
            "urgency_level": result.urgency_level,
            "days_overdue": result.days_overdue,
            "escalation_reason": result.escalation_reason,
            "tier": result.tier,
            "rules_version": RULES_VERSION,
            "customer_name": customer_name,
            "task_type": task.task_type,
            "task_title": task.title,
            "owner_role": task.owner_role,
            "assigned_to": task.assigned_to,
        }, today)
        if not claimed:
            return False, None
        delivery = self.notifier.notify_escalation(task, result, stakeholders, customer_name)
        self._record_delivery(task, "task_escalated", delivery)
        logger.info("Overdue task escalated to %s", ",".join(result.escalate_to),
                    extra={"task_id": task.id, "onboarding_id": task.onboarding_id,
                           "urgency": result.urgency_level})
        return True, delivery

    def escalate_blocker(self, task, stakeholders, customer_name, today=None, *,
                         source="system", trigger="automated"):
        """Escalate a blocked task to its successor contacts once per day."""
        today = today or _today()
        escalation = get_blocker_escalation_recipients(task, stakeholders)
        claimed = self._claim(task, "blocker_escalated", {
            "escalation_type": "blocker",
            "onboarding_id": task.onboarding_id,
            "escalated_to": list(escalation.escalate_to),
            "escalation_roles": list(escalation.roles),
            "urgency_level": escalation.urgency_level,
            "blocker_reason": task.blocker_reason,
            "rules_version": RULES_VERSION,
            "customer_name": customer_name,
            "task_type": task.task_type,
            "task_title": task.title,
            "owner_role": task.owner_role,
            "assigned_to": task.assigned_to,
            "source": source,
            "trigger": trigger,
        }, today)
        if not claimed:
            return False, None
        delivery = self.notifier.notify_blocker(task, customer_name, escalation.escalate_to,
                                               urgency=escalation.urgency_level)
        self._record_delivery(task, "blocker_created", delivery)
        logger.info("Blocked task escalated to %s", ",".join(escalation.escalate_to) or "-",
                    extra={"task_id": task.id, "onboarding_id": task.onboarding_id,
                           "urgency": escalation.urgency_level})
        return True, delivery

    # ── Batch runs ───────────────────────────────────────────────────────

    def process_onboarding(self, onboarding_id, today=None) -> dict:
        """Escalate every overdue and every blocked open task of one onboarding."""
        today = today or _today()
        _, customer_name, stakeholders = self._load(onboarding_id)
        tasks = self.tasks.list_by(onboarding_id=onboarding_id,
                                   status=("pending", "in_progress", "blocked"))

        triggered, skipped, errors = 0, 0, []

        for task, result in find_tasks_needing_escalation(tasks, today=today):
            try:
                escalated, delivery = self.escalate_overdue(task, result, stakeholders, customer_name, today)
            except (ValidationError, PersistenceError) as exc:
                errors.append(f"Error escalating task {task.id}: {exc}")
                continue
            if not escalated:
                skipped += 1
                continue
            triggered += 1
            if not delivery.success:
                errors.append(f"Failed to notify escalation for task {task.id}: {delivery.error}")

        for task in (t for t in tasks if t.is_blocker):
            try:
                escalated, delivery = self.escalate_blocker(task, stakeholders, customer_name, today)
            except (ValidationError, PersistenceError) as exc:
                errors.append(f"Error escalating blocker {task.id}: {exc}")
                continue
            if not escalated:
                skipped += 1
                continue
            triggered += 1
            if not delivery.success:
                errors.append(f"Failed to notify blocker escalation for task {task.id}: {delivery.error}")

        return {
            "onboarding_id": onboarding_id,
            "escalations_triggered": triggered,
            "skipped_duplicates": skipped,
            "errors": errors,
        }

    def process_active_onboardings(self, today=None) -> dict:
        today = today or _today()
        results = [
            self.process_onboarding(onboarding.id, today=today)
            for onboarding in self.onboardings.list_by(status=ACTIVE_ONBOARDING_STATUSES)
        ]
        return {
            "escalations_triggered": sum(r["escalations_triggered"] for r in results),
            "results": results,
        }

    def list_escalations(self, onboarding_id=None, limit=None):
        """Escalation audit records, most recent first."""
        records = []
        for event_type in ("escalation_triggered", "blocker_escalated"):
            records.extend(self.ledger.query({
                "entity_type": "escalation",
                "event_type": event_type,
                "onboarding_id": onboarding_id,
                "limit": limit,
            }))
        records.sort(key=lambda r: (r.created_at.replace(tzinfo=None), r.id), reverse=True)
        return records[:limit] if limit else records

    # ── Reminders ────────────────────────────────────────────────────────

    def send_due_reminders(self, onboarding_id, within_days=None, today=None) -> dict:
        """Remind the assignee of every open task due in 0..within_days days."""
        today = today or _today()
        within_days = self.reminder_window_days if within_days is None else int(within_days)
        if within_days < 0:
            raise ValidationError("within_days must be >= 0", details={"within_days": within_days})

        _, customer_name, stakeholders = self._load(onboarding_id)
        horizon = today + timedelta(days=within_days)
        sent, errors = 0, []
        for task in self.tasks.list_by(onboarding_id=onboarding_id, status=("pending", "in_progress")):
            due = parse_date(task.due_date)
            if due is None or not today <= due <= horizon:
                continue
            contact = next((s for s in stakeholders if s.email == task.assigned_to), None)
            contact = contact or next((s for s in stakeholders if s.role == task.owner_role), None)
            if contact is None:
                errors.append(f"No stakeholder to remind for task {task.id}")
                continue
            delivery = self.notifier.send_task_reminder(task, contact, customer_name, (due - today).days)
            self._record_delivery(task, "task_reminder", delivery)
            if delivery.success:
                sent += 1
            else:
                errors.append(f"Failed to send reminder for task {task.id}: {delivery.error}")
        return {"onboarding_id": onboarding_id, "reminders_sent": sent, "errors": errors}
