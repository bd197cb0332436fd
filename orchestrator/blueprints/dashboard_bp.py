"""Dashboard blueprint — portfolio KPIs across all onboardings."""

from flask import Blueprint, jsonify

from orchestrator.services.container import get_services

dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/v1/dashboard")


@dashboard_bp.route("", methods=["GET"])
def full_dashboard():
    return jsonify(get_services().dashboard.get_dashboard()), 200
