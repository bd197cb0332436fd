"""
Onboarding Orchestrator
Tests — IntegrationService (in-memory repositories).

Covers:
    - validation runs move the integration to its verdict status and are audited
    - results for another integration, or older than the stored run, are rejected
    - manual updates and their audit events; verdict statuses only come from a run
    - progress, status report, instructions and guide lookups
"""

from datetime import datetime, timedelta, timezone

import pytest

from orchestrator.core.exceptions import NotFoundError, ValidationError
from orchestrator.services.integration_lifecycle import run_integration_tests

T0 = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture()
def created(memory, onboarding_payload):
    return memory.services.onboarding.create_onboarding(onboarding_payload)


@pytest.fixture()
def integrations(memory, created):
    rows = memory.services.integrations.list_integrations(created["onboarding"]["id"])
    return {i.type: i for i in rows}


class TestValidation:
    def test_sis_with_credentials_becomes_active(self, memory, integrations):
        result = memory.services.integrations.validate_integration(integrations["SIS"].id)

        assert result.overall_status == "passed"
        assert integrations["SIS"].status == "active"
        assert integrations["SIS"].test_results["completion_percentage"] == 100
        tested = memory.events("integration_tested")[0]
        assert tested.event_metadata["previous_status"] == "not_configured"
        assert tested.event_metadata["new_status"] == "active"
        assert len(memory.events("integration_activated")) == 1

    def test_api_without_credentials_fails(self, memory, integrations):
        result = memory.services.integrations.validate_integration(integrations["API"].id)

        assert result.completion_percentage == 67
        assert integrations["API"].status == "failed"
        tested = memory.events("integration_tested")[0]
        assert tested.event_metadata["failed_tests"] == ["authentication"]
        failed = memory.events("integration_failed")[0]
        assert failed.event_metadata["next_steps"][0] == "Address 1 failed test(s)"

    def test_result_for_another_integration_rejected(self, memory, integrations):
        result = run_integration_tests(integrations["API"], now=T0)
        with pytest.raises(ValidationError):
            memory.services.integrations.apply_validation(integrations["SIS"], result)
        assert integrations["SIS"].status == "not_configured"

    def test_stale_result_rejected(self, memory, integrations):
        svc = memory.services.integrations
        sis = integrations["SIS"]
        svc.apply_validation(sis, run_integration_tests(sis, now=T0))
        older = run_integration_tests(sis, now=T0 - timedelta(hours=1))
        with pytest.raises(ValidationError):
            svc.apply_validation(sis, older)
        assert sis.test_results["timestamp"] == T0.isoformat()

    def test_rerun_after_fixing_credentials(self, memory, integrations):
        svc = memory.services.integrations
        api = integrations["API"]
        svc.apply_validation(api, run_integration_tests(api, now=T0))
        svc.update_integration(api.id, {"configuration": {"bearer_token": "t-1"}})
        svc.apply_validation(api, run_integration_tests(api, now=T0 + timedelta(minutes=5)))
        assert api.status == "active"

    def test_unknown_integration(self, memory):
        with pytest.raises(NotFoundError):
            memory.services.integrations.validate_integration("missing")


class TestManualUpdates:
    def test_status_change_audited(self, memory, integrations):
        memory.services.integrations.update_integration(integrations["SIS"].id, {"status": "configured"})
        record = memory.events("integration_configured")[0]
        assert record.event_metadata["previous_status"] == "not_configured"

    @pytest.mark.parametrize("status", ["testing", "active", "failed"])
    def test_verdict_statuses_not_set_by_hand(self, memory, integrations, status):
        svc = memory.services.integrations
        sis = integrations["SIS"]
        svc.validate_integration(sis.id)
        with pytest.raises(ValidationError):
            svc.update_integration(sis.id, {"status": status})
        assert sis.status == "active"
        assert len(memory.events("integration_tested")) == 1
        assert memory.events("integration_configured") == []

    @pytest.mark.parametrize("data", [{}, {"name": ""}, {"configuration": "x"}, {"status": "broken"}])
    def test_invalid(self, memory, integrations, data):
        with pytest.raises(ValidationError):
            memory.services.integrations.update_integration(integrations["SIS"].id, data)

    def test_create_audited(self, memory, created):
        integration = memory.services.integrations.create_integration(
            created["onboarding"]["id"], {"type": "SFTP", "name": "Nightly drop"})
        assert integration.status == "not_configured"
        record = memory.events("integration_created")[-1]
        assert record.event_metadata["integration_type"] == "SFTP"
        assert record.event_metadata["configuration_provided"] is False


class TestReporting:
    def test_progress_and_report(self, memory, created, integrations):
        svc = memory.services.integrations
        svc.validate_integration(integrations["SIS"].id)
        svc.validate_integration(integrations["API"].id)
        onboarding_id = created["onboarding"]["id"]

        progress = svc.get_progress(onboarding_id)
        assert progress["completion_percentage"] == 50
        assert progress["status_breakdown"]["active"] == 1
        assert progress["status_breakdown"]["failed"] == 1

        report = svc.get_status_report(onboarding_id)
        assert report["recommendations"] == ["Fix 1 failed integration(s)"]

    def test_instructions(self, memory, integrations):
        instructions = memory.services.integrations.get_instructions(integrations["SIS"].id, "it_contact")
        assert instructions["integration_type"] == "SIS"
        with pytest.raises(ValidationError):
            memory.services.integrations.get_instructions(integrations["SIS"].id, "janitor")

    def test_guide(self, memory, created):
        guide = memory.services.integrations.get_guide(created["onboarding"]["id"])
        assert guide["overview"] == "Integration setup guide for 2 integration(s) involving 4 stakeholder(s)"
        assert len(guide["integration_guides"][0]["stakeholder_instructions"]) == 4
