"""
Onboarding Orchestrator
Task Service — task lifecycle, blockers and blocker resolution.

Task invariants hold before every write:
    - a blocker always carries a non-empty reason
    - a completed task has completed_at set and is never a blocker

The onboarding follows its tasks: it becomes ``blocked`` when a blocker is
reported and returns to ``in_progress`` once no blocker remains. State is
committed first; audit records and notifications follow the commit.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from orchestrator.core.exceptions import NotFoundError, PersistenceError, ValidationError
from orchestrator.models.onboarding import (
    STAKEHOLDER_ROLES,
    TASK_PRIORITIES,
    TASK_STATUSES,
    OnboardingTask,
)
from orchestrator.services.escalation import UNKNOWN_CUSTOMER
from orchestrator.services.onboarding_service import USER_ACTION
from orchestrator.services.task_assignment import (
    assign_task,
    calculate_task_due_date,
    calculate_task_priority,
)
from orchestrator.utils.helpers import parse_date_input, require_choice, require_fields

logger = logging.getLogger(__name__)

IMPACT_LEVELS = ("low", "medium", "high", "critical")


class TaskService:
    """Task CRUD plus the blocker workflow."""

    def __init__(self, *, customers, onboardings, tasks, stakeholders, ledger, notifier, escalation,
                 clock=None):
        self.customers = customers
        self.onboardings = onboardings
        self.tasks = tasks
        self.stakeholders = stakeholders
        self.ledger = ledger
        self.notifier = notifier
        self.escalation = escalation
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    # ── Lookups ──────────────────────────────────────────────────────────

    def get_or_404(self, task_id):
        task = self.tasks.get(task_id)
        if task is None:
            raise NotFoundError(resource="Task", resource_id=task_id)
        return task

    def _onboarding(self, onboarding_id):
        onboarding = self.onboardings.get(onboarding_id)
        if onboarding is None:
            raise NotFoundError(resource="Onboarding", resource_id=onboarding_id)
        return onboarding

    def _customer_name(self, onboarding):
        customer = self.customers.get(onboarding.customer_id)
        return customer.name if customer is not None else UNKNOWN_CUSTOMER

    def list_tasks(self, onboarding_id, status=None):
        self._onboarding(onboarding_id)
        filters = {"onboarding_id": onboarding_id}
        if status:
            filters["status"] = require_choice(status, TASK_STATUSES, "status")
        return self.tasks.list_by(**filters)

    def list_blockers(self, onboarding_id):
        self._onboarding(onboarding_id)
        return self.tasks.list_by(onboarding_id=onboarding_id, is_blocker=True)

    # ── Create ───────────────────────────────────────────────────────────

    def create_task(self, onboarding_id, data, notify=True):
        """Create a task; owner, priority and due date default from the rule tables."""
        onboarding = self._onboarding(onboarding_id)
        data = data or {}
        require_fields(data, "task_type", "title")
        stakeholders = self.stakeholders.list_by(onboarding_id=onboarding_id)

        assignment = assign_task(data["task_type"], stakeholders)
        owner_role = data.get("owner_role") or assignment.owner_role
        require_choice(owner_role, STAKEHOLDER_ROLES, "owner_role")
        priority = data.get("priority") or calculate_task_priority(data["task_type"])
        require_choice(priority, TASK_PRIORITIES, "priority")
        due_date = parse_date_input(data.get("due_date"), "due_date")
        if due_date is None:
            due_date = calculate_task_due_date(data["task_type"], onboarding.go_live_date,
                                               now=self._clock()).date()
        assigned_to = data.get("assigned_to")
        if assigned_to is None and owner_role == assignment.owner_role:
            assigned_to = assignment.assigned_to

        task = self.tasks.add(OnboardingTask(
            onboarding_id=onboarding_id,
            task_type=data["task_type"],
            title=str(data["title"]).strip(),
            description=data.get("description"),
            owner_role=owner_role,
            assigned_to=assigned_to,
            priority=priority,
            due_date=due_date,
        ))
        self.ledger.record("task", task.id, "task_created", {
            "onboarding_id": onboarding_id,
            "task_type": task.task_type,
            "owner_role": task.owner_role,
            "assigned_to": task.assigned_to,
            "priority": task.priority,
            "due_date": task.due_date.isoformat() if task.due_date else None,
            **USER_ACTION,
        })

        if notify and task.assigned_to:
            contact = next((s for s in stakeholders if s.email == task.assigned_to), None)
            if contact is not None:
                result = self.notifier.notify_task_assignment(task, contact, self._customer_name(onboarding))
                if not result.success:
                    logger.warning("Assignment notification failed: %s", result.error,
                                   extra={"task_id": task.id})
        return task

    # ── Status changes ───────────────────────────────────────────────────

    def update_task(self, task_id, data):
        """Change status (and optionally assignee) of a task.

        Moving a task to ``blocked`` goes through report_blocker and needs
        ``blocker_reason``.
        """
        data = data or {}
        task = self.get_or_404(task_id)
        status = data.get("status")
        if status is None and "assigned_to" not in data:
            raise ValidationError("status or assigned_to is required",
                                  details={"status": "required"})
        if status is not None:
            require_choice(status, TASK_STATUSES, "status")

        if status == "blocked":
            return self.report_blocker(task_id, data.get("blocker_reason"),
                                       assigned_to=data.get("assigned_to"))["task"]

        previous_status = task.status
        was_blocker = task.is_blocker
        onboarding = self._onboarding(task.onboarding_id)
        changes = {}
        if status is not None and status != previous_status:
            changes["status"] = status
            if status == "completed":
                changes["completed_at"] = self._clock()
            if was_blocker:
                changes.update(is_blocker=False, blocker_reason=None)

        with self.tasks.unit_of_work():
            if changes:
                self.tasks.update(task, **changes)
            onboarding_change = self._sync_onboarding(onboarding) if was_blocker and changes else None

        if "assigned_to" in data:
            self._reassign(task, data["assigned_to"])
        if changes:
            self._audit_status_change(task, previous_status)
        if onboarding_change:
            self._audit_onboarding_change(onboarding, *onboarding_change)
        return task

    def _reassign(self, task, assigned_to):
        if assigned_to == task.assigned_to:
            return
        self.tasks.update(task, assigned_to=assigned_to)
        self.ledger.record("task", task.id, "task_assigned", {
            "onboarding_id": task.onboarding_id,
            "assigned_to": assigned_to,
            **USER_ACTION,
        })

    def _audit_status_change(self, task, previous_status):
        base = {"onboarding_id": task.onboarding_id, **USER_ACTION}
        if task.status == "completed":
            self.ledger.record("task", task.id, "task_completed", {
                **base,
                "previous_status": previous_status,
                "completed_at": task.completed_at.isoformat() if task.completed_at else None,
            })
        else:
            self.ledger.record("task", task.id, "task_status_changed", {
                **base, "previous_status": previous_status, "new_status": task.status,
            })

    def _sync_onboarding(self, onboarding):
        """Unblock the onboarding when no blocker remains. Returns (previous, new) or None."""
        remaining = self.tasks.list_by(onboarding_id=onboarding.id, is_blocker=True)
        if remaining or onboarding.status != "blocked":
            return None
        self.onboardings.update(onboarding, status="in_progress")
        return "blocked", "in_progress"

    def _audit_onboarding_change(self, onboarding, previous_status, new_status, **extra):
        self.ledger.record("onboarding", onboarding.id, "onboarding_status_changed", {
            "onboarding_id": onboarding.id,
            "previous_status": previous_status,
            "new_status": new_status,
            **extra,
            **USER_ACTION,
        })

    # ── Blockers ─────────────────────────────────────────────────────────

    def report_blocker(self, task_id, blocker_reason, impact_level="medium", reported_by=None,
                       assigned_to=None):
        """Mark a task blocked, block its onboarding and escalate immediately.

        The escalation is claimed per task per day, so reporting the same
        blocker twice on one day notifies once. ``assigned_to`` reassigns the
        task once every check has passed. An audit store outage does not undo
        the blocker; the result carries ``escalation_error`` instead.
        """
        if not blocker_reason or not str(blocker_reason).strip():
            raise ValidationError("blocker_reason is required when blocking a task",
                                  details={"blocker_reason": "required"})
        impact_level = impact_level or "medium"
        require_choice(impact_level, IMPACT_LEVELS, "impact_level")
        task = self.get_or_404(task_id)
        if task.status == "completed":
            raise ValidationError("A completed task cannot be blocked", details={"status": task.status})

        onboarding = self._onboarding(task.onboarding_id)
        previous_task_status = task.status
        previous_onboarding_status = onboarding.status
        changes = {"status": "blocked", "is_blocker": True, "blocker_reason": str(blocker_reason).strip()}
        reassigned = assigned_to is not None and assigned_to != task.assigned_to
        if reassigned:
            changes["assigned_to"] = assigned_to
        with self.tasks.unit_of_work():
            self.tasks.update(task, **changes)
            if onboarding.status != "blocked":
                self.onboardings.update(onboarding, status="blocked")

        base = {"onboarding_id": onboarding.id, **USER_ACTION}
        if reassigned:
            self.ledger.record("task", task.id, "task_assigned", {**base, "assigned_to": assigned_to})
        self.ledger.record("task", task.id, "blocker_created", {
            **base,
            "blocker_reason": task.blocker_reason,
            "impact_level": impact_level,
            "reported_by": reported_by,
            "previous_status": previous_task_status,
        })
        if previous_onboarding_status != onboarding.status:
            self._audit_onboarding_change(onboarding, previous_onboarding_status, onboarding.status,
                                          reason="blocker_reported", task_id=task.id)
        logger.info("Blocker reported (%s impact)", impact_level,
                    extra={"task_id": task.id, "onboarding_id": onboarding.id})

        stakeholders = self.stakeholders.list_by(onboarding_id=onboarding.id)
        escalation_error = None
        try:
            escalated, delivery = self.escalation.escalate_blocker(
                task, stakeholders, self._customer_name(onboarding),
                today=self._clock().date(), source="api", trigger="user_action",
            )
        except (ValidationError, PersistenceError) as exc:
            # the blocker is committed; the escalation is retried by the next run
            logger.error("Blocker escalation failed: %s", exc,
                         extra={"task_id": task.id, "onboarding_id": onboarding.id})
            escalated, delivery, escalation_error = False, None, str(exc)
        return {
            "task": task,
            "escalated": escalated,
            "notification": delivery.to_dict() if delivery is not None else None,
            "escalation_error": escalation_error,
        }

    def resolve_blocker(self, task_id, resolution_notes=None):
        """Clear a blocker; the task returns to pending."""
        task = self.get_or_404(task_id)
        if not task.is_blocker:
            raise ValidationError("Task is not blocked", details={"task_id": task_id})

        onboarding = self._onboarding(task.onboarding_id)
        previous_reason = task.blocker_reason
        with self.tasks.unit_of_work():
            self.tasks.update(task, status="pending", is_blocker=False, blocker_reason=None)
            onboarding_change = self._sync_onboarding(onboarding)
            remaining = len(self.tasks.list_by(onboarding_id=onboarding.id, is_blocker=True))

        self.ledger.record("task", task.id, "blocker_resolved", {
            "onboarding_id": onboarding.id,
            "resolution_notes": resolution_notes,
            "previous_blocker_reason": previous_reason,
            "remaining_blockers_count": remaining,
            **USER_ACTION,
        })
        if onboarding_change:
            self._audit_onboarding_change(onboarding, *onboarding_change,
                                          reason="all_blockers_resolved", task_id=task.id)

        stakeholders = self.stakeholders.list_by(onboarding_id=onboarding.id)
        delivery = self.notifier.notify_blocker_resolution(
            task, stakeholders, self._customer_name(onboarding), resolution_notes,
        )
        if not delivery.success:
            logger.warning("Blocker resolution notification failed: %s", delivery.error,
                           extra={"task_id": task.id})
        return {
            "task": task,
            "remaining_blockers": remaining,
            "onboarding_status": onboarding.status,
            "notification": delivery.to_dict(),
        }
