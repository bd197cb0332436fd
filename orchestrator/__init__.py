"""
Onboarding Orchestrator
Flask Application Factory.

Usage:
    from orchestrator import create_app
    app = create_app()           # defaults to APP_ENV or "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

import click
from flask import Flask, request
from flask_cors import CORS
from sqlalchemy import engine as _sa_engine
from sqlalchemy import event as _sa_event

from orchestrator.config import config
from orchestrator.core.exceptions import ConflictError, NotFoundError, PersistenceError, ValidationError
from orchestrator.middleware.logging_config import configure_logging
from orchestrator.middleware.timing import init_request_timing
from orchestrator.models import db
from orchestrator.services.container import EXTENSION_KEY, build_services
from orchestrator.utils.errors import E, api_error

logger = logging.getLogger(__name__)


# ── SQLite FK enforcement (global engine event) ─────────────────────────
@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """Enable foreign key enforcement for SQLite connections."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def _register_error_handlers(app):
    @app.errorhandler(NotFoundError)
    def _not_found_error(e):
        return api_error(E.NOT_FOUND, str(e))

    @app.errorhandler(ValidationError)
    def _validation_error(e):
        code = E.VALIDATION_REQUIRED if "required" in (e.details or {}).values() else E.VALIDATION_INVALID
        return api_error(code, e.message, details=e.details)

    @app.errorhandler(ConflictError)
    def _conflict_error(e):
        return api_error(E.CONFLICT_DUPLICATE, str(e))

    @app.errorhandler(PersistenceError)
    def _persistence_error(e):
        logger.error("Persistence failure on %s: %s", request.path, e)
        return api_error(E.DATABASE, "Database error")

    @app.errorhandler(404)
    def not_found(e):
        return {"error": "Not found", "path": request.path}, 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return api_error(E.INTERNAL, "Internal server error")


def _register_cli(app):
    @app.cli.command("run-escalations")
    def run_escalations_cmd():
        """Escalate overdue and blocked tasks of every active onboarding."""
        summary = app.extensions[EXTENSION_KEY].escalation.process_active_onboardings()
        click.echo(f"Escalations triggered: {summary['escalations_triggered']}")
        for result in summary["results"]:
            for error in result["errors"]:
                click.echo(f"  {result['onboarding_id']}: {error}", err=True)

    @app.cli.command("send-reminders")
    @click.argument("onboarding_id")
    @click.option("--within-days", type=int, default=None, help="Reminder window in days.")
    def send_reminders_cmd(onboarding_id, within_days):
        """Send due-date reminders for one onboarding."""
        result = app.extensions[EXTENSION_KEY].escalation.send_due_reminders(onboarding_id, within_days)
        click.echo(f"Reminders sent: {result['reminders_sent']}")


def create_app(config_name=None, services=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: One of "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.
        services:    Optional pre-built OnboardingServices (tests inject
                     fakes); built from config otherwise.

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config[config_name]())

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── Request timing middleware ────────────────────────────────────────
    init_request_timing(app)

    # ── Import all models so create_all sees them ────────────────────────
    from orchestrator.models import audit as _audit_models  # noqa: F401
    from orchestrator.models import onboarding as _onboarding_models  # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS) ────────────────────────
    with app.app_context():
        if app.config["SQLALCHEMY_DATABASE_URI"].startswith("sqlite:///") and ":memory:" not in \
                app.config["SQLALCHEMY_DATABASE_URI"]:
            os.makedirs(app.instance_path, exist_ok=True)
        db.create_all()

    # ── Services ─────────────────────────────────────────────────────────
    app.extensions[EXTENSION_KEY] = services or build_services(app.config)

    # ── Blueprints ───────────────────────────────────────────────────────
    from orchestrator.blueprints.audit_bp import audit_bp
    from orchestrator.blueprints.dashboard_bp import dashboard_bp
    from orchestrator.blueprints.escalation_bp import escalation_bp
    from orchestrator.blueprints.health_bp import health_bp
    from orchestrator.blueprints.integration_bp import integration_bp
    from orchestrator.blueprints.onboarding_bp import onboarding_bp
    from orchestrator.blueprints.stakeholder_bp import stakeholder_bp
    from orchestrator.blueprints.task_bp import task_bp

    app.register_blueprint(onboarding_bp)
    app.register_blueprint(task_bp)
    app.register_blueprint(stakeholder_bp)
    app.register_blueprint(integration_bp)
    app.register_blueprint(escalation_bp)
    app.register_blueprint(audit_bp)
    app.register_blueprint(dashboard_bp)
    app.register_blueprint(health_bp)

    # ── Error handlers ───────────────────────────────────────────────────
    _register_error_handlers(app)

    # ── CLI commands ─────────────────────────────────────────────────────
    _register_cli(app)

    logger.info("Onboarding Orchestrator started (env=%s)", app.config.get("APP_ENV"))
    return app
