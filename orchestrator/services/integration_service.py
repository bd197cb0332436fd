"""
Onboarding Orchestrator
Integration Service — integration records, validation runs and reporting.

Status transitions driven by a validation run go through apply_validation
only. A result is rejected when it belongs to another integration or is
older than the run already stored on the integration.
"""

from __future__ import annotations

import logging

from orchestrator.core.exceptions import NotFoundError, ValidationError
from orchestrator.models.onboarding import INTEGRATION_STATUSES, STAKEHOLDER_ROLES, Integration
from orchestrator.services.integration_instructions import IntegrationInstructionGenerator
from orchestrator.services.integration_lifecycle import (
    calculate_integration_progress,
    determine_integration_status,
    generate_status_report,
    run_integration_tests,
)
from orchestrator.services.onboarding_service import USER_ACTION, validate_integration_input
from orchestrator.utils.helpers import parse_datetime, require_choice

logger = logging.getLogger(__name__)

# testing / active / failed are only reached through a validation run
MANUAL_STATUSES = ("not_configured", "configured")


class IntegrationService:
    """Integration CRUD, lifecycle validation and the integration guide."""

    def __init__(self, *, onboardings, integrations, stakeholders, ledger, checker=None):
        self.onboardings = onboardings
        self.integrations = integrations
        self.stakeholders = stakeholders
        self.ledger = ledger
        self.checker = checker

    def get_or_404(self, integration_id):
        integration = self.integrations.get(integration_id)
        if integration is None:
            raise NotFoundError(resource="Integration", resource_id=integration_id)
        return integration

    def _check_onboarding(self, onboarding_id):
        if self.onboardings.get(onboarding_id) is None:
            raise NotFoundError(resource="Onboarding", resource_id=onboarding_id)

    def list_integrations(self, onboarding_id):
        self._check_onboarding(onboarding_id)
        return self.integrations.list_by(onboarding_id=onboarding_id)

    # ── CRUD ─────────────────────────────────────────────────────────────

    def create_integration(self, onboarding_id, data):
        self._check_onboarding(onboarding_id)
        cleaned = validate_integration_input(data or {})
        integration = self.integrations.add(
            Integration(onboarding_id=onboarding_id, status="not_configured", **cleaned)
        )
        self.ledger.record("integration", integration.id, "integration_created", {
            "onboarding_id": onboarding_id,
            "integration_type": integration.type,
            "integration_name": integration.name,
            "configuration_provided": bool(integration.configuration),
            **USER_ACTION,
        })
        return integration

    def update_integration(self, integration_id, data):
        """Update name, configuration or status by hand.

        Only ``not_configured`` and ``configured`` may be set directly.
        """
        integration = self.get_or_404(integration_id)
        data = data or {}
        changes = {}
        if "name" in data:
            if not data["name"]:
                raise ValidationError("name cannot be empty", details={"name": "required"})
            changes["name"] = str(data["name"]).strip()
        if "configuration" in data:
            if not isinstance(data["configuration"], dict):
                raise ValidationError("configuration must be an object",
                                      details={"configuration": "expected object"})
            changes["configuration"] = data["configuration"]
        if "status" in data:
            require_choice(data["status"], INTEGRATION_STATUSES, "status")
            if data["status"] not in MANUAL_STATUSES:
                raise ValidationError(
                    f"Status {data['status']!r} is set by a validation run; "
                    f"manual status must be one of: {', '.join(MANUAL_STATUSES)}",
                    details={"status": data["status"]},
                )
            changes["status"] = data["status"]
        if not changes:
            raise ValidationError("No updatable fields provided",
                                  details={"allowed": ["name", "configuration", "status"]})

        previous_status = integration.status
        self.integrations.update(integration, **changes)

        if integration.status != previous_status and integration.status == "configured":
            self.ledger.record("integration", integration.id, "integration_configured", {
                "onboarding_id": integration.onboarding_id,
                "integration_type": integration.type,
                "previous_status": previous_status,
                "new_status": integration.status,
                **USER_ACTION,
            })
        return integration

    # ── Validation ───────────────────────────────────────────────────────

    def validate_integration(self, integration_id, checker=None):
        """Run the test battery and apply its verdict."""
        integration = self.get_or_404(integration_id)
        result = run_integration_tests(integration, checker or self.checker)
        self.apply_validation(integration, result)
        return result

    def apply_validation(self, integration, result):
        """Store a validation result and move the integration to its verdict status."""
        if result.integration_id != integration.id:
            raise ValidationError(
                "Validation result belongs to another integration",
                details={"integration_id": integration.id, "result_integration_id": result.integration_id},
            )
        stored = parse_datetime((integration.test_results or {}).get("timestamp"))
        if stored is not None and _naive(stored) > _naive(result.tested_at):
            raise ValidationError(
                "Validation result is older than the stored result",
                details={"stored": stored.isoformat(), "result": result.tested_at.isoformat()},
            )

        previous_status = integration.status
        new_status = determine_integration_status(result)
        self.integrations.update(integration, status=new_status, test_results=result.to_dict())
        logger.info("Integration validated: %s (%d%%)", result.overall_status,
                    result.completion_percentage, extra={"integration_id": integration.id})

        base = {"onboarding_id": integration.onboarding_id, "integration_type": integration.type}
        self.ledger.record("integration", integration.id, "integration_tested", {
            **base,
            "overall_status": result.overall_status,
            "completion_percentage": result.completion_percentage,
            "previous_status": previous_status,
            "new_status": new_status,
            "failed_tests": [t.test_type for t in result.test_results if not t.success],
        })
        if new_status == "active":
            self.ledger.record("integration", integration.id, "integration_activated", base)
        elif new_status == "failed":
            self.ledger.record("integration", integration.id, "integration_failed", {
                **base, "next_steps": list(result.next_steps),
            })
        return integration

    # ── Reporting ────────────────────────────────────────────────────────

    def get_progress(self, onboarding_id):
        return calculate_integration_progress(self.list_integrations(onboarding_id))

    def get_status_report(self, onboarding_id):
        return generate_status_report(self.list_integrations(onboarding_id))

    def get_instructions(self, integration_id, role):
        integration = self.get_or_404(integration_id)
        require_choice(role, STAKEHOLDER_ROLES, "role")
        return IntegrationInstructionGenerator.generate_instructions(integration.type, role)

    def get_guide(self, onboarding_id):
        integrations = self.list_integrations(onboarding_id)
        stakeholders = self.stakeholders.list_by(onboarding_id=onboarding_id)
        return IntegrationInstructionGenerator.generate_onboarding_integration_guide(integrations, stakeholders)


def _naive(value):
    return value.replace(tzinfo=None) if value.tzinfo is not None else value
