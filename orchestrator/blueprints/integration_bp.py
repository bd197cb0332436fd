"""
Integration blueprint.

Endpoints:
    GET   /api/v1/onboardings/<id>/integrations          — list + progress
    POST  /api/v1/onboardings/<id>/integrations          — add integration
    GET   /api/v1/onboardings/<id>/integrations/report   — status report
    GET   /api/v1/onboardings/<id>/integrations/guide    — setup guide for all stakeholders
    GET   /api/v1/integrations/<integration_id>          — single integration (with configuration)
    PATCH /api/v1/integrations/<integration_id>          — name / configuration / status
    POST  /api/v1/integrations/<integration_id>/validate — run the test battery
    GET   /api/v1/integrations/<integration_id>/instructions?role=  — role-specific setup script
"""

from flask import Blueprint, jsonify, request

from orchestrator.blueprints import json_body
from orchestrator.services.container import get_services

integration_bp = Blueprint("integrations", __name__, url_prefix="/api/v1")


@integration_bp.route("/onboardings/<onboarding_id>/integrations", methods=["GET"])
def list_integrations(onboarding_id):
    svc = get_services().integrations
    items = svc.list_integrations(onboarding_id)
    return jsonify({
        "integrations": [i.to_dict(include_configuration=False) for i in items],
        "progress": svc.get_progress(onboarding_id),
    }), 200


@integration_bp.route("/onboardings/<onboarding_id>/integrations", methods=["POST"])
def create_integration(onboarding_id):
    integration = get_services().integrations.create_integration(onboarding_id, json_body())
    return jsonify(integration.to_dict(include_configuration=False)), 201


@integration_bp.route("/onboardings/<onboarding_id>/integrations/report", methods=["GET"])
def integration_report(onboarding_id):
    return jsonify(get_services().integrations.get_status_report(onboarding_id)), 200


@integration_bp.route("/onboardings/<onboarding_id>/integrations/guide", methods=["GET"])
def integration_guide(onboarding_id):
    return jsonify(get_services().integrations.get_guide(onboarding_id)), 200


@integration_bp.route("/integrations/<integration_id>", methods=["GET"])
def get_integration(integration_id):
    return jsonify(get_services().integrations.get_or_404(integration_id).to_dict()), 200


@integration_bp.route("/integrations/<integration_id>", methods=["PATCH"])
def update_integration(integration_id):
    integration = get_services().integrations.update_integration(integration_id, json_body())
    return jsonify(integration.to_dict(include_configuration=False)), 200


@integration_bp.route("/integrations/<integration_id>/validate", methods=["POST"])
def validate_integration(integration_id):
    svc = get_services().integrations
    result = svc.validate_integration(integration_id)
    integration = svc.get_or_404(integration_id)
    return jsonify({
        "validation": result.to_dict(),
        "integration": integration.to_dict(include_configuration=False),
    }), 200


@integration_bp.route("/integrations/<integration_id>/instructions", methods=["GET"])
def integration_instructions(integration_id):
    role = request.args.get("role", "owner")
    return jsonify(get_services().integrations.get_instructions(integration_id, role)), 200
