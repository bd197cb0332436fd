"""
Onboarding Orchestrator
Onboarding Service — intake and aggregate-level operations.

create_onboarding writes the customer, the onboarding, its stakeholders,
integrations and generated tasks as one unit of work (all rows or none),
then appends the creation audit trail in a single batch.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from orchestrator.core.exceptions import NotFoundError, ValidationError
from orchestrator.models.onboarding import (
    CUSTOMER_SIZES,
    INTEGRATION_TYPES,
    ONBOARDING_STATUSES,
    STAKEHOLDER_ROLES,
    Customer,
    Integration,
    Onboarding,
    OnboardingTask,
    Stakeholder,
)
from orchestrator.services.integration_lifecycle import calculate_integration_progress
from orchestrator.services.rule_tables import RULES_VERSION
from orchestrator.services.task_assignment import generate_initial_tasks
from orchestrator.utils.helpers import (
    normalize_email,
    parse_date_input,
    require_choice,
    require_fields,
)

logger = logging.getLogger(__name__)

USER_ACTION = {"source": "api", "trigger": "user_action"}


def validate_stakeholder_input(data, index=None):
    """Return cleaned stakeholder kwargs; raises ValidationError."""
    label = "stakeholder" if index is None else f"stakeholders[{index}]"
    if not isinstance(data, dict):
        raise ValidationError(f"{label} must be an object")
    require_fields(data, "role", "name", "email")
    require_choice(data["role"], STAKEHOLDER_ROLES, "role")
    responsibilities = data.get("responsibilities") or []
    if not isinstance(responsibilities, list):
        raise ValidationError(f"{label}.responsibilities must be a list",
                              details={"responsibilities": responsibilities})
    return {
        "role": data["role"],
        "name": str(data["name"]).strip(),
        "email": normalize_email(data["email"]),
        "phone": data.get("phone"),
        "responsibilities": [str(r) for r in responsibilities],
    }


def validate_integration_input(data, index=None):
    label = "integration" if index is None else f"integrations[{index}]"
    if not isinstance(data, dict):
        raise ValidationError(f"{label} must be an object")
    require_fields(data, "type", "name")
    require_choice(data["type"], INTEGRATION_TYPES, "type")
    configuration = data.get("configuration") or {}
    if not isinstance(configuration, dict):
        raise ValidationError(f"{label}.configuration must be an object",
                              details={"configuration": "expected object"})
    return {"type": data["type"], "name": str(data["name"]).strip(), "configuration": configuration}


class OnboardingService:
    """Intake, lookup and status changes for onboardings."""

    def __init__(self, *, customers, onboardings, tasks, stakeholders, integrations, ledger, clock=None):
        self.customers = customers
        self.onboardings = onboardings
        self.tasks = tasks
        self.stakeholders = stakeholders
        self.integrations = integrations
        self.ledger = ledger
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    # ── Intake ───────────────────────────────────────────────────────────

    def _validate_intake(self, data, now):
        require_fields(data, "customer_name", "contract_start_date")
        contract_start = parse_date_input(data["contract_start_date"], "contract_start_date")
        size = data.get("customer_size") or data.get("size")
        if size is not None:
            require_choice(size, CUSTOMER_SIZES, "customer_size")
        go_live = parse_date_input(data.get("go_live_date"), "go_live_date")
        if go_live is not None and go_live <= now.date():
            raise ValidationError("go_live_date must be in the future",
                                  details={"go_live_date": go_live.isoformat()})
        contact_email = data.get("contact_email")
        if contact_email:
            contact_email = normalize_email(contact_email, "contact_email")

        stakeholders = data.get("stakeholders") or []
        integrations = data.get("integrations") or []
        if not isinstance(stakeholders, list) or not isinstance(integrations, list):
            raise ValidationError("stakeholders and integrations must be lists")
        return {
            "customer": {
                "name": str(data["customer_name"]).strip(),
                "contract_start_date": contract_start,
                "contact_email": contact_email,
                "industry": data.get("industry"),
                "size": size,
            },
            "go_live_date": go_live,
            "stakeholders": [validate_stakeholder_input(s, i) for i, s in enumerate(stakeholders)],
            "integrations": [validate_integration_input(s, i) for i, s in enumerate(integrations)],
        }

    def create_onboarding(self, data) -> dict:
        """Create a complete onboarding from intake data.

        Everything is validated before the first write. The customer,
        onboarding, stakeholders, integrations and generated tasks commit
        together; a failure rolls all of them back and nothing is audited.
        """
        now = self._clock()
        intake = self._validate_intake(data or {}, now)

        with self.onboardings.unit_of_work():
            customer = self.customers.add(Customer(**intake["customer"]))
            onboarding = self.onboardings.add(Onboarding(
                customer_id=customer.id,
                status="in_progress",
                current_stage="kickoff",
                go_live_date=intake["go_live_date"],
            ))
            stakeholders = self.stakeholders.add_all(
                Stakeholder(onboarding_id=onboarding.id, **s) for s in intake["stakeholders"]
            )
            integrations = self.integrations.add_all(
                Integration(onboarding_id=onboarding.id, status="not_configured", **i)
                for i in intake["integrations"]
            )
            drafts = generate_initial_tasks(
                customer_size=customer.size,
                go_live_date=onboarding.go_live_date,
                stakeholders=stakeholders,
                integrations=integrations,
                now=now,
            )
            tasks = self.tasks.add_all(
                OnboardingTask(
                    onboarding_id=onboarding.id,
                    task_type=d.task_type,
                    title=d.title,
                    description=d.description,
                    owner_role=d.owner_role,
                    assigned_to=d.assigned_to,
                    priority=d.priority,
                    due_date=d.due_date,
                )
                for d in drafts
            )

        logger.info("Onboarding created: %d stakeholders, %d integrations, %d tasks",
                    len(stakeholders), len(integrations), len(tasks),
                    extra={"onboarding_id": onboarding.id})

        self.ledger.record_batch(self._creation_trail(customer, onboarding, stakeholders, integrations, tasks))
        return {
            "onboarding": onboarding.to_dict(),
            "customer": customer.to_dict(),
            "stakeholders": [s.to_dict() for s in stakeholders],
            "integrations": [i.to_dict(include_configuration=False) for i in integrations],
            "tasks": [t.to_dict() for t in tasks],
        }

    @staticmethod
    def _creation_trail(customer, onboarding, stakeholders, integrations, tasks):
        base = {"onboarding_id": onboarding.id, **USER_ACTION}
        entries = [
            {"entity_type": "customer", "entity_id": customer.id, "event_type": "customer_created",
             "metadata": {**base, "customer_name": customer.name, "customer_size": customer.size}},
            {"entity_type": "onboarding", "entity_id": onboarding.id, "event_type": "onboarding_created",
             "metadata": {**base, "customer_id": customer.id,
                          "go_live_date": onboarding.go_live_date.isoformat() if onboarding.go_live_date else None,
                          "task_count": len(tasks)}},
        ]
        entries += [
            {"entity_type": "stakeholder", "entity_id": s.id, "event_type": "stakeholder_created",
             "metadata": {**base, "role": s.role, "name": s.name, "email": s.email}}
            for s in stakeholders
        ]
        entries += [
            {"entity_type": "integration", "entity_id": i.id, "event_type": "integration_created",
             "metadata": {**base, "integration_type": i.type, "integration_name": i.name,
                          "status": i.status, "configuration_provided": bool(i.configuration)}}
            for i in integrations
        ]
        entries += [
            {"entity_type": "task", "entity_id": t.id, "event_type": "task_created",
             "metadata": {**base, "task_type": t.task_type, "owner_role": t.owner_role,
                          "assigned_to": t.assigned_to, "priority": t.priority,
                          "due_date": t.due_date.isoformat() if t.due_date else None,
                          "rules_version": RULES_VERSION}}
            for t in tasks
        ]
        return entries

    # ── Queries ──────────────────────────────────────────────────────────

    def get_or_404(self, onboarding_id):
        onboarding = self.onboardings.get(onboarding_id)
        if onboarding is None:
            raise NotFoundError(resource="Onboarding", resource_id=onboarding_id)
        return onboarding

    def get_onboarding(self, onboarding_id) -> dict:
        onboarding = self.get_or_404(onboarding_id)
        customer = self.customers.get(onboarding.customer_id)
        integrations = self.integrations.list_by(onboarding_id=onboarding_id)
        tasks = self.tasks.list_by(onboarding_id=onboarding_id)
        return {
            "onboarding": onboarding.to_dict(),
            "customer": customer.to_dict() if customer else None,
            "stakeholders": [s.to_dict() for s in self.stakeholders.list_by(onboarding_id=onboarding_id)],
            "integrations": [i.to_dict(include_configuration=False) for i in integrations],
            "tasks": [t.to_dict() for t in tasks],
            "integration_progress": calculate_integration_progress(integrations),
        }

    def list_onboardings(self, status=None) -> list[dict]:
        filters = {}
        if status:
            require_choice(status, ONBOARDING_STATUSES, "status")
            filters["status"] = status
        rows = []
        for onboarding in self.onboardings.list_by(**filters):
            customer = self.customers.get(onboarding.customer_id)
            data = onboarding.to_dict()
            data["customer_name"] = customer.name if customer else None
            rows.append(data)
        return rows

    # ── Updates ──────────────────────────────────────────────────────────

    def update_onboarding(self, onboarding_id, data) -> dict:
        """Change status, stage or go-live date of an onboarding."""
        onboarding = self.get_or_404(onboarding_id)
        data = data or {}
        changes = {}
        if "status" in data:
            changes["status"] = require_choice(data["status"], ONBOARDING_STATUSES, "status")
        if "current_stage" in data:
            changes["current_stage"] = data["current_stage"]
        now = self._clock()
        if "go_live_date" in data:
            go_live = parse_date_input(data["go_live_date"], "go_live_date")
            if go_live is not None and go_live <= now.date():
                raise ValidationError("go_live_date must be in the future",
                                      details={"go_live_date": go_live.isoformat()})
            changes["go_live_date"] = go_live
        if not changes:
            raise ValidationError("No updatable fields provided",
                                  details={"allowed": ["status", "current_stage", "go_live_date"]})

        previous_status = onboarding.status
        previous_go_live = onboarding.go_live_date
        if changes.get("status") == "completed" and previous_status != "completed":
            changes["completed_at"] = now
            customer = self.customers.get(onboarding.customer_id)
            if customer is not None and customer.contract_start_date:
                changes["time_to_value_days"] = (now.date() - customer.contract_start_date).days

        with self.onboardings.unit_of_work():
            self.onboardings.update(onboarding, **changes)

        base = {"onboarding_id": onboarding.id, **USER_ACTION}
        if "status" in changes and changes["status"] != previous_status:
            self.ledger.record("onboarding", onboarding.id, "onboarding_status_changed",
                               {**base, "previous_status": previous_status, "new_status": onboarding.status})
            if onboarding.status == "completed":
                self.ledger.record("onboarding", onboarding.id, "onboarding_completed",
                                   {**base, "time_to_value_days": onboarding.time_to_value_days})
        if "go_live_date" in changes and changes["go_live_date"] != previous_go_live:
            self.ledger.record("onboarding", onboarding.id, "go_live_date_updated", {
                **base,
                "go_live_date": onboarding.go_live_date.isoformat() if onboarding.go_live_date else None,
                "previous_value": previous_go_live.isoformat() if previous_go_live else None,
            })
        return onboarding.to_dict()
