"""
WSGI entry point.

Usage:
    flask --app wsgi run-escalations
    flask --app wsgi send-reminders <onboarding_id> --within-days 2
"""

from orchestrator import create_app

app = create_app()
