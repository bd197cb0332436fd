"""
Onboarding Orchestrator
Tests — Task Assignment Resolver.

Covers:
    - assign_task: preferred role order, fallback role, first stakeholder wins
    - calculate_task_priority: classification + totality
    - calculate_task_due_date: offsets, go-live buffer/clamp, determinism
    - generate_initial_tasks: task set per intake shape, dedupe
    - build_assignment_notification
"""

from datetime import date, datetime, timedelta, timezone

import pytest

from orchestrator.models.onboarding import Integration, OnboardingTask, Stakeholder
from orchestrator.services.task_assignment import (
    assign_task,
    build_assignment_notification,
    calculate_task_due_date,
    calculate_task_priority,
    generate_initial_tasks,
)

NOW = datetime(2024, 3, 1, 9, 30, tzinfo=timezone.utc)


def _stakeholder(role, email, name="Someone"):
    return Stakeholder(onboarding_id="ob-1", role=role, name=name, email=email)


@pytest.fixture
def team():
    return [
        _stakeholder("owner", "owner@acme.test"),
        _stakeholder("it_contact", "it@acme.test"),
        _stakeholder("project_manager", "pm@acme.test"),
        _stakeholder("technical_lead", "lead@acme.test"),
    ]


# ═════════════════════════════════════════════════════════════════════════════
# assign_task
# ═════════════════════════════════════════════════════════════════════════════

class TestAssignTask:
    def test_first_preferred_role_with_a_stakeholder_wins(self, team):
        assignment = assign_task("sis_setup", team)
        assert assignment.owner_role == "it_contact"
        assert assignment.assigned_to == "it@acme.test"

    def test_falls_through_to_next_preferred_role(self):
        stakeholders = [_stakeholder("technical_lead", "lead@acme.test")]
        assignment = assign_task("sis_setup", stakeholders)
        assert assignment.owner_role == "technical_lead"
        assert assignment.assigned_to == "lead@acme.test"

    def test_fallback_role_without_contact(self):
        assignment = assign_task("timeline_planning", [_stakeholder("owner", "o@acme.test")])
        assert assignment.owner_role == "project_manager"
        assert assignment.assigned_to is None

    def test_unknown_task_type_uses_default_rule(self, team):
        assignment = assign_task("data_migration", team)
        assert assignment.owner_role == "project_manager"
        assert assignment.assigned_to == "pm@acme.test"

    def test_first_stakeholder_of_a_role_in_list_order(self):
        stakeholders = [
            _stakeholder("project_manager", "first@acme.test"),
            _stakeholder("project_manager", "second@acme.test"),
        ]
        assert assign_task("kickoff_meeting", stakeholders).assigned_to == "first@acme.test"

    def test_deterministic(self, team):
        assert assign_task("crm_testing", team) == assign_task("crm_testing", team)


# ═════════════════════════════════════════════════════════════════════════════
# Priority / due date
# ═════════════════════════════════════════════════════════════════════════════

class TestPriority:
    @pytest.mark.parametrize("task_type,expected", [
        ("security_review", "critical"),
        ("sis_setup", "critical"),
        ("kickoff_meeting", "high"),
        ("requirements_review", "high"),
        ("go_live_preparation", "high"),
        ("crm_setup", "high"),
        ("crm_testing", "medium"),
        ("timeline_planning", "medium"),
        ("something_else", "medium"),
        ("", "medium"),
    ])
    def test_classification(self, task_type, expected):
        assert calculate_task_priority(task_type) == expected


class TestDueDate:
    @pytest.mark.parametrize("task_type,days", [
        ("kickoff_meeting", 1),
        ("requirements_review", 2),
        ("sis_setup", 3),
        ("crm_setup", 5),
        ("sis_testing", 5),
        ("api_testing", 7),
        ("timeline_planning", 7),
    ])
    def test_base_offsets(self, task_type, days):
        assert calculate_task_due_date(task_type, now=NOW) == NOW + timedelta(days=days)

    def test_security_review_is_faster_for_enterprise(self):
        assert calculate_task_due_date("security_review", customer_size="enterprise", now=NOW) \
            == NOW + timedelta(days=5)
        assert calculate_task_due_date("security_review", customer_size="small", now=NOW) \
            == NOW + timedelta(days=7)

    def test_go_live_preparation_two_days_before_go_live(self):
        go_live = date(2024, 3, 21)
        due = calculate_task_due_date("go_live_preparation", go_live_date=go_live, now=NOW)
        # floor(19.6 days) = 19, minus the 2-day buffer
        assert due == NOW + timedelta(days=17)

    def test_go_live_preparation_clamped_to_one_day(self):
        due = calculate_task_due_date("go_live_preparation", go_live_date=date(2024, 3, 2), now=NOW)
        assert due == NOW + timedelta(days=1)

    def test_go_live_preparation_without_date_uses_default_horizon(self):
        assert calculate_task_due_date("go_live_preparation", now=NOW) == NOW + timedelta(days=14)

    @pytest.mark.parametrize("task_type", [
        "kickoff_meeting", "sis_setup", "go_live_preparation", "unknown", "",
    ])
    def test_always_strictly_in_the_future(self, task_type):
        assert calculate_task_due_date(task_type, go_live_date=date(2020, 1, 1), now=NOW) > NOW

    def test_deterministic_for_fixed_now(self):
        first = calculate_task_due_date("sftp_setup", now=NOW)
        assert first == calculate_task_due_date("sftp_setup", now=NOW)


# ═════════════════════════════════════════════════════════════════════════════
# Initial task generation
# ═════════════════════════════════════════════════════════════════════════════

class TestGenerateInitialTasks:
    def test_minimal_intake(self):
        drafts = generate_initial_tasks(now=NOW)
        assert [d.task_type for d in drafts] == ["kickoff_meeting", "go_live_preparation"]

    def test_full_enterprise_intake(self, team):
        integrations = [Integration(onboarding_id="ob-1", type="SIS", name="Banner")]
        drafts = generate_initial_tasks(customer_size="enterprise", go_live_date=date(2024, 5, 1),
                                        stakeholders=team, integrations=integrations, now=NOW)
        assert [d.task_type for d in drafts] == [
            "kickoff_meeting", "sis_setup", "sis_testing", "requirements_review",
            "timeline_planning", "security_review", "compliance_check", "go_live_preparation",
        ]
        setup = drafts[1]
        assert setup.title == "Set up SIS integration: Banner"
        assert setup.owner_role == "it_contact"
        assert setup.assigned_to == "it@acme.test"
        assert setup.priority == "critical"
        assert setup.due_date == date(2024, 3, 4)
        assert drafts[2].title == "Test SIS integration: Banner"

    def test_same_integration_type_twice_generates_one_pair(self, team):
        integrations = [Integration(onboarding_id="ob-1", type="CRM", name="Salesforce"),
                        Integration(onboarding_id="ob-1", type="CRM", name="HubSpot")]
        drafts = generate_initial_tasks(stakeholders=team, integrations=integrations, now=NOW)
        types = [d.task_type for d in drafts]
        assert types.count("crm_setup") == 1
        assert types.count("crm_testing") == 1

    def test_small_customer_gets_no_security_tasks(self, team):
        drafts = generate_initial_tasks(customer_size="small", stakeholders=team, now=NOW)
        assert "security_review" not in [d.task_type for d in drafts]

    def test_due_dates_are_dates_after_now(self, team):
        for draft in generate_initial_tasks(stakeholders=team, now=NOW):
            assert isinstance(draft.due_date, date)
            assert draft.due_date > NOW.date()


def test_build_assignment_notification():
    task = OnboardingTask(onboarding_id="ob-1", task_type="sis_setup", title="Set up SIS",
                          owner_role="it_contact", priority="critical", due_date=date(2024, 3, 4))
    stakeholder = _stakeholder("it_contact", "it@acme.test", name="Ian")
    content = build_assignment_notification(task, stakeholder, "Acme")
    assert content["subject"] == "New Task Assignment: Set up SIS - Acme"
    assert content["urgency"] == "critical"
    assert "Hello Ian" in content["message"]
    assert "Due Date: 2024-03-04" in content["message"]
    assert "No additional details provided" in content["message"]
