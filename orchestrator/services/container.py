"""
Service wiring for the Flask app.

build_services() assembles repositories, the audit ledger, notification
gateways and the domain services from app.config. create_app stores the
result on ``app.extensions["onboarding_services"]``; blueprints read it
through ``get_services()``.
"""

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app

from orchestrator.integrations.connectivity_gateway import SimulatedConnectivityChecker
from orchestrator.integrations.notification_gateway import NotificationGateway
from orchestrator.repositories import build_sqlalchemy_repositories
from orchestrator.services.audit_ledger import AuditLedger
from orchestrator.services.dashboard_service import DashboardService
from orchestrator.services.escalation import EscalationService
from orchestrator.services.integration_service import IntegrationService
from orchestrator.services.notification import NotificationService
from orchestrator.services.onboarding_service import OnboardingService
from orchestrator.services.stakeholder_service import StakeholderService
from orchestrator.services.task_service import TaskService

EXTENSION_KEY = "onboarding_services"


@dataclass
class OnboardingServices:
    ledger: AuditLedger
    notifier: NotificationService
    escalation: EscalationService
    onboarding: OnboardingService
    tasks: TaskService
    stakeholders: StakeholderService
    integrations: IntegrationService
    dashboard: DashboardService


def build_services(cfg, repositories=None, gateway=None, escalation_gateway=None, checker=None,
                   clock=None) -> OnboardingServices:
    """Wire every service. ``cfg`` is a mapping such as ``app.config``.

    Tests pass in-memory repositories and fake gateways; by default the
    SQLAlchemy repositories and webhook gateways from config are used.
    """
    repos = repositories or build_sqlalchemy_repositories()
    timeout = cfg.get("NOTIFICATION_TIMEOUT", 10)
    if gateway is None:
        gateway = NotificationGateway(webhook_url=cfg.get("NOTIFICATION_WEBHOOK_URL"), timeout=timeout)
    if escalation_gateway is None and cfg.get("ESCALATION_WEBHOOK_URL"):
        escalation_gateway = NotificationGateway(webhook_url=cfg["ESCALATION_WEBHOOK_URL"], timeout=timeout)

    ledger = AuditLedger(
        repos["audit"],
        environment=cfg.get("APP_ENV", "development"),
        system_version=cfg.get("APP_VERSION", "unknown"),
        summary_cap=cfg.get("AUDIT_SUMMARY_CAP", 10000),
        default_limit=cfg.get("AUDIT_DEFAULT_LIMIT", 100),
        clock=clock,
    )
    notifier = NotificationService(gateway, escalation_gateway)
    core = {
        "customers": repos["customers"],
        "onboardings": repos["onboardings"],
        "tasks": repos["tasks"],
        "stakeholders": repos["stakeholders"],
    }
    escalation = EscalationService(
        **core, ledger=ledger, notifier=notifier,
        reminder_window_days=cfg.get("REMINDER_WINDOW_DAYS", 2),
    )
    return OnboardingServices(
        ledger=ledger,
        notifier=notifier,
        escalation=escalation,
        onboarding=OnboardingService(**core, integrations=repos["integrations"], ledger=ledger, clock=clock),
        tasks=TaskService(**core, ledger=ledger, notifier=notifier, escalation=escalation, clock=clock),
        stakeholders=StakeholderService(onboardings=repos["onboardings"], stakeholders=repos["stakeholders"],
                                        ledger=ledger),
        integrations=IntegrationService(onboardings=repos["onboardings"], integrations=repos["integrations"],
                                        stakeholders=repos["stakeholders"], ledger=ledger,
                                        checker=checker or SimulatedConnectivityChecker()),
        dashboard=DashboardService(customers=repos["customers"], onboardings=repos["onboardings"],
                                   tasks=repos["tasks"], integrations=repos["integrations"], clock=clock),
    )


def get_services() -> OnboardingServices:
    return current_app.extensions[EXTENSION_KEY]
