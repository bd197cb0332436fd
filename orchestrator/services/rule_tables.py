"""
Rule Tables — versioned static lookup tables.

Task-assignment rules (task type → preferred roles → fallback role) and
escalation rules (task type → overdue threshold → escalation chain →
urgency). The tables are immutable tuples of frozen dataclasses; bump
RULES_VERSION whenever a row changes so audit records can name the rule set
that produced a decision.

Usage:
    from orchestrator.services.rule_tables import get_escalation_rule
    rule = get_escalation_rule("sis_setup")
"""

from __future__ import annotations

from dataclasses import dataclass

RULES_VERSION = "2024.1"


@dataclass(frozen=True)
class TaskAssignmentRule:
    task_type: str
    preferred_roles: tuple[str, ...]
    fallback_role: str


@dataclass(frozen=True)
class EscalationRule:
    task_type: str
    overdue_threshold_days: int
    escalation_chain: tuple[str, ...]  # first = least severe
    urgency_level: str


# ═════════════════════════════════════════════════════════════════════════════
# Task assignment
# ═════════════════════════════════════════════════════════════════════════════

TASK_ASSIGNMENT_RULES: tuple[TaskAssignmentRule, ...] = (
    TaskAssignmentRule("kickoff_meeting", ("project_manager", "owner"), "project_manager"),
    TaskAssignmentRule("requirements_review", ("owner", "project_manager"), "owner"),
    TaskAssignmentRule("timeline_planning", ("project_manager",), "project_manager"),
    TaskAssignmentRule("security_review", ("technical_lead", "it_contact"), "technical_lead"),
    TaskAssignmentRule("compliance_check", ("technical_lead", "owner"), "technical_lead"),
    TaskAssignmentRule("go_live_preparation", ("project_manager", "technical_lead"), "project_manager"),
)

# Integration setup/testing rules take precedence over the general table.
INTEGRATION_TASK_RULES: dict[str, TaskAssignmentRule] = {
    rule.task_type: rule
    for rule in (
        TaskAssignmentRule("sis_setup", ("it_contact", "technical_lead"), "it_contact"),
        TaskAssignmentRule("crm_setup", ("it_contact", "technical_lead"), "it_contact"),
        TaskAssignmentRule("sftp_setup", ("technical_lead", "it_contact"), "technical_lead"),
        TaskAssignmentRule("api_setup", ("technical_lead",), "technical_lead"),
        TaskAssignmentRule("sis_testing", ("technical_lead", "it_contact"), "technical_lead"),
        TaskAssignmentRule("crm_testing", ("technical_lead", "it_contact"), "technical_lead"),
        TaskAssignmentRule("sftp_testing", ("technical_lead",), "technical_lead"),
        TaskAssignmentRule("api_testing", ("technical_lead",), "technical_lead"),
    )
}

DEFAULT_ASSIGNMENT_RULE = TaskAssignmentRule("default", (), "project_manager")


def get_assignment_rule(task_type: str) -> TaskAssignmentRule:
    """Integration rules first, then the general table, else the default rule."""
    rule = INTEGRATION_TASK_RULES.get(task_type)
    if rule is not None:
        return rule
    for candidate in TASK_ASSIGNMENT_RULES:
        if candidate.task_type == task_type:
            return candidate
    return DEFAULT_ASSIGNMENT_RULE


# ═════════════════════════════════════════════════════════════════════════════
# Escalation
# ═════════════════════════════════════════════════════════════════════════════

ESCALATION_RULES: tuple[EscalationRule, ...] = (
    EscalationRule("kickoff_meeting", 1, ("project_manager", "owner"), "high"),
    EscalationRule("sis_setup", 2, ("technical_lead", "project_manager", "owner"), "critical"),
    EscalationRule("crm_setup", 3, ("technical_lead", "project_manager"), "high"),
    EscalationRule("sftp_setup", 3, ("technical_lead", "project_manager"), "high"),
    EscalationRule("api_setup", 3, ("technical_lead", "project_manager"), "high"),
    EscalationRule("security_review", 2, ("technical_lead", "project_manager", "owner"), "critical"),
    EscalationRule("compliance_check", 2, ("technical_lead", "project_manager", "owner"), "critical"),
    EscalationRule("go_live_preparation", 1, ("project_manager", "owner"), "critical"),
)

DEFAULT_ESCALATION_RULE = EscalationRule("default", 3, ("project_manager", "owner"), "medium")

# Blocker escalation: current owner role → successor roles
BLOCKER_ESCALATION_MAP: dict[str, tuple[str, ...]] = {
    "it_contact": ("technical_lead", "project_manager"),
    "technical_lead": ("project_manager", "owner"),
    "project_manager": ("owner",),
    "owner": ("project_manager",),  # back to the PM for resolution support
}

DEFAULT_BLOCKER_ESCALATION: tuple[str, ...] = ("project_manager",)

# Highest tier index reachable regardless of chain length
MAX_ESCALATION_TIER = 2


def get_escalation_rule(task_type: str) -> EscalationRule:
    for rule in ESCALATION_RULES:
        if rule.task_type == task_type:
            return rule
    return DEFAULT_ESCALATION_RULE
