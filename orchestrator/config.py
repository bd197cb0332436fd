"""
Onboarding Orchestrator
Configuration classes for the Flask app factory.

Usage:
    config_name = os.getenv("APP_ENV", "development")
    app.config.from_object(config[config_name])
"""

import os

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))

# Default SQLite path for local dev when PostgreSQL is not running
_SQLITE_DEV = f"sqlite:///{os.path.join(basedir, 'instance', 'orchestrator_dev.db')}"
_SQLITE_TEST = "sqlite:///:memory:"


def _normalise_db_url(raw):
    # Heroku-style postgres:// URLs are rejected by SQLAlchemy 2.0
    return raw.replace("postgres://", "postgresql://", 1) if raw else raw


class Config:
    """Base configuration shared across all environments."""

    APP_ENV = os.getenv("APP_ENV", "development")
    APP_VERSION = os.getenv("APP_VERSION", "0.1.0")
    DEBUG = False
    TESTING = False

    # SQLAlchemy
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
    }

    # CORS
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    # Notification transport (webhook). Unset → notifications are logged only.
    NOTIFICATION_WEBHOOK_URL = os.getenv("NOTIFICATION_WEBHOOK_URL")
    NOTIFICATION_TIMEOUT = int(os.getenv("NOTIFICATION_TIMEOUT", "10"))
    # Escalations and blocker alerts; falls back to NOTIFICATION_WEBHOOK_URL
    ESCALATION_WEBHOOK_URL = os.getenv("ESCALATION_WEBHOOK_URL")

    # Audit ledger
    AUDIT_SUMMARY_CAP = int(os.getenv("AUDIT_SUMMARY_CAP", "10000"))
    AUDIT_DEFAULT_LIMIT = 100

    # Escalation / reminders
    REMINDER_WINDOW_DAYS = int(os.getenv("REMINDER_WINDOW_DAYS", "2"))


class DevelopmentConfig(Config):
    """Development environment configuration."""

    DEBUG = True
    APP_ENV = "development"
    SQLALCHEMY_DATABASE_URI = _normalise_db_url(os.getenv("DATABASE_URL", "")) or _SQLITE_DEV


class TestingConfig(Config):
    """Testing environment configuration."""

    TESTING = True
    APP_ENV = "testing"
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", _SQLITE_TEST)
    SQLALCHEMY_ENGINE_OPTIONS = {}
    NOTIFICATION_WEBHOOK_URL = None
    ESCALATION_WEBHOOK_URL = None


class ProductionConfig(Config):
    """Production environment configuration."""

    DEBUG = False
    APP_ENV = "production"
    SQLALCHEMY_DATABASE_URI = _normalise_db_url(os.getenv("DATABASE_URL", "")) or None
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")  # Must be set explicitly in production

    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_recycle": 300,
        "pool_timeout": 20,
    }

    def __init__(self):
        if not self.SQLALCHEMY_DATABASE_URI:
            raise RuntimeError("DATABASE_URL environment variable is required in production")


# Configuration mapping: environment name -> config class
config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
