"""Stakeholder Service — contacts attached to an onboarding."""

from __future__ import annotations

import logging

from orchestrator.core.exceptions import NotFoundError, ValidationError
from orchestrator.models.onboarding import STAKEHOLDER_ROLES, Stakeholder
from orchestrator.services.onboarding_service import USER_ACTION, validate_stakeholder_input
from orchestrator.utils.helpers import require_choice

logger = logging.getLogger(__name__)

_UPDATABLE = ("role", "name", "email", "phone", "responsibilities")


class StakeholderService:

    def __init__(self, *, onboardings, stakeholders, ledger):
        self.onboardings = onboardings
        self.stakeholders = stakeholders
        self.ledger = ledger

    def get_or_404(self, stakeholder_id):
        stakeholder = self.stakeholders.get(stakeholder_id)
        if stakeholder is None:
            raise NotFoundError(resource="Stakeholder", resource_id=stakeholder_id)
        return stakeholder

    def _check_onboarding(self, onboarding_id):
        if self.onboardings.get(onboarding_id) is None:
            raise NotFoundError(resource="Onboarding", resource_id=onboarding_id)

    def list_stakeholders(self, onboarding_id, role=None):
        self._check_onboarding(onboarding_id)
        filters = {"onboarding_id": onboarding_id}
        if role:
            filters["role"] = require_choice(role, STAKEHOLDER_ROLES, "role")
        return self.stakeholders.list_by(**filters)

    def create_stakeholder(self, onboarding_id, data):
        self._check_onboarding(onboarding_id)
        cleaned = validate_stakeholder_input(data or {})
        stakeholder = self.stakeholders.add(Stakeholder(onboarding_id=onboarding_id, **cleaned))
        self.ledger.record("stakeholder", stakeholder.id, "stakeholder_created", {
            "onboarding_id": onboarding_id,
            "role": stakeholder.role,
            "name": stakeholder.name,
            "email": stakeholder.email,
            **USER_ACTION,
        })
        return stakeholder

    def update_stakeholder(self, stakeholder_id, data):
        """Apply a partial update; only changed fields are audited."""
        stakeholder = self.get_or_404(stakeholder_id)
        data = {k: v for k, v in (data or {}).items() if k in _UPDATABLE}
        if not data:
            raise ValidationError("No updatable fields provided", details={"allowed": list(_UPDATABLE)})

        merged = {field: getattr(stakeholder, field) for field in _UPDATABLE}
        merged.update(data)
        cleaned = validate_stakeholder_input(merged)
        changed = [f for f in _UPDATABLE if cleaned[f] != getattr(stakeholder, f)]
        if not changed:
            return stakeholder

        previous = {f: getattr(stakeholder, f) for f in changed}
        self.stakeholders.update(stakeholder, **{f: cleaned[f] for f in changed})
        self.ledger.record("stakeholder", stakeholder.id, "stakeholder_updated", {
            "onboarding_id": stakeholder.onboarding_id,
            "changed_fields": changed,
            "previous_value": previous,
            "new_value": {f: cleaned[f] for f in changed},
            **USER_ACTION,
        })
        return stakeholder
