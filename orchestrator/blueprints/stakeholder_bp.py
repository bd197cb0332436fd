"""
Stakeholder blueprint.

Endpoints:
    GET   /api/v1/onboardings/<id>/stakeholders  — list (optional ?role=)
    POST  /api/v1/onboardings/<id>/stakeholders  — add stakeholder
    PATCH /api/v1/stakeholders/<stakeholder_id>  — partial update
"""

from flask import Blueprint, jsonify, request

from orchestrator.blueprints import json_body
from orchestrator.services.container import get_services

stakeholder_bp = Blueprint("stakeholders", __name__, url_prefix="/api/v1")


@stakeholder_bp.route("/onboardings/<onboarding_id>/stakeholders", methods=["GET"])
def list_stakeholders(onboarding_id):
    items = get_services().stakeholders.list_stakeholders(onboarding_id, request.args.get("role"))
    return jsonify({"stakeholders": [s.to_dict() for s in items], "total": len(items)}), 200


@stakeholder_bp.route("/onboardings/<onboarding_id>/stakeholders", methods=["POST"])
def create_stakeholder(onboarding_id):
    stakeholder = get_services().stakeholders.create_stakeholder(onboarding_id, json_body())
    return jsonify(stakeholder.to_dict()), 201


@stakeholder_bp.route("/stakeholders/<stakeholder_id>", methods=["PATCH"])
def update_stakeholder(stakeholder_id):
    stakeholder = get_services().stakeholders.update_stakeholder(stakeholder_id, json_body())
    return jsonify(stakeholder.to_dict()), 200
