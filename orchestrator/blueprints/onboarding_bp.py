"""
Onboarding blueprint.

Endpoints:
    GET   /api/v1/onboardings                  — list (optional ?status=)
    POST  /api/v1/onboardings                  — intake: customer, stakeholders, integrations
    GET   /api/v1/onboardings/<id>             — onboarding with tasks, stakeholders, integrations
    PATCH /api/v1/onboardings/<id>             — status / stage / go-live date
"""

from flask import Blueprint, jsonify, request

from orchestrator.blueprints import json_body
from orchestrator.services.container import get_services

onboarding_bp = Blueprint("onboarding", __name__, url_prefix="/api/v1")


@onboarding_bp.route("/onboardings", methods=["GET"])
def list_onboardings():
    items = get_services().onboarding.list_onboardings(request.args.get("status"))
    return jsonify({"onboardings": items, "total": len(items)}), 200


@onboarding_bp.route("/onboardings", methods=["POST"])
def create_onboarding():
    """Create a complete onboarding.

    Body: {
        customer_name, contract_start_date, contact_email?, industry?,
        customer_size?, go_live_date?,
        stakeholders?: [{role, name, email, phone?, responsibilities?}],
        integrations?: [{type, name, configuration?}]
    }
    """
    result = get_services().onboarding.create_onboarding(json_body())
    return jsonify(result), 201


@onboarding_bp.route("/onboardings/<onboarding_id>", methods=["GET"])
def get_onboarding(onboarding_id):
    return jsonify(get_services().onboarding.get_onboarding(onboarding_id)), 200


@onboarding_bp.route("/onboardings/<onboarding_id>", methods=["PATCH"])
def update_onboarding(onboarding_id):
    return jsonify(get_services().onboarding.update_onboarding(onboarding_id, json_body())), 200
