"""
Shared pytest fixtures for the Onboarding Orchestrator test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse); also
      rewires the app's services onto a fresh RecordingGateway
    - client: Flask test client (function-scoped)
    - gateway: the RecordingGateway the app delivers notifications to
    - memory: in-memory repositories + services for service-level tests
    - onboarding_payload: a valid intake body
"""

from datetime import date, timedelta

import pytest

from orchestrator import create_app
from orchestrator.models import db as _db
from orchestrator.services.container import EXTENSION_KEY, build_services
from tests.fakes import FixedClock, RecordingGateway, build_memory_repositories


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    app.extensions[EXTENSION_KEY] = build_services(app.config, gateway=RecordingGateway())
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture()
def gateway(app):
    return app.extensions[EXTENSION_KEY].notifier.gateway


# ── In-memory service fixtures ───────────────────────────────────────────


class MemoryServices:
    """Services wired onto in-memory repositories, with handles on the fakes."""

    def __init__(self):
        self.repos = build_memory_repositories()
        self.gateway = RecordingGateway()
        self.clock = FixedClock()
        self.services = build_services({"APP_ENV": "testing", "APP_VERSION": "test"},
                                       repositories=self.repos, gateway=self.gateway, clock=self.clock)

    @property
    def audit(self):
        return self.repos["audit"].records

    def events(self, event_type):
        return [r for r in self.audit if r.event_type == event_type]


@pytest.fixture()
def memory():
    return MemoryServices()


@pytest.fixture()
def onboarding_payload():
    """Intake body with every stakeholder role and two integrations."""
    return {
        "customer_name": "Northwind University",
        "contract_start_date": "2024-02-15",
        "contact_email": "ops@northwind.edu",
        "industry": "education",
        "customer_size": "enterprise",
        "go_live_date": (date.today() + timedelta(days=60)).isoformat(),
        "stakeholders": [
            {"role": "owner", "name": "Olivia Owner", "email": "olivia@northwind.edu"},
            {"role": "it_contact", "name": "Ian IT", "email": "ian@northwind.edu"},
            {"role": "project_manager", "name": "Pat PM", "email": "pat@northwind.edu"},
            {"role": "technical_lead", "name": "Tara Tech", "email": "tara@northwind.edu"},
        ],
        "integrations": [
            {"type": "SIS", "name": "Banner", "configuration": {"api_key": "k-123"}},
            {"type": "API", "name": "Partner API", "configuration": {}},
        ],
    }
