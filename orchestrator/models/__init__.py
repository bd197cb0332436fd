"""
Onboarding Orchestrator
Shared SQLAlchemy handle.

Every model module imports ``db`` from here so the application factory can
bind it with ``db.init_app(app)``.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
