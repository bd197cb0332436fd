"""
Escalation blueprint.

Endpoints:
    POST /api/v1/escalations/run                    — all active onboardings
    POST /api/v1/onboardings/<id>/escalations/run   — one onboarding
    POST /api/v1/onboardings/<id>/reminders         — due-date reminders
    GET  /api/v1/escalations                        — escalation history (?onboarding_id=&limit=)

Runs are triggered externally (cron, workflow tool); the same task is
escalated at most once per day.
"""

from datetime import date

from flask import Blueprint, jsonify, request

from orchestrator.blueprints import json_body
from orchestrator.services.container import get_services
from orchestrator.utils.helpers import parse_date_input

escalation_bp = Blueprint("escalations", __name__, url_prefix="/api/v1")


def _today() -> date | None:
    return parse_date_input(request.args.get("date"), "date")


@escalation_bp.route("/escalations/run", methods=["POST"])
def run_all():
    return jsonify(get_services().escalation.process_active_onboardings(today=_today())), 200


@escalation_bp.route("/onboardings/<onboarding_id>/escalations/run", methods=["POST"])
def run_one(onboarding_id):
    return jsonify(get_services().escalation.process_onboarding(onboarding_id, today=_today())), 200


@escalation_bp.route("/onboardings/<onboarding_id>/reminders", methods=["POST"])
def send_reminders(onboarding_id):
    """Body: {within_days?}"""
    result = get_services().escalation.send_due_reminders(
        onboarding_id, json_body().get("within_days"), today=_today(),
    )
    return jsonify(result), 200


@escalation_bp.route("/escalations", methods=["GET"])
def list_escalations():
    limit = request.args.get("limit", 100, type=int)
    records = get_services().escalation.list_escalations(request.args.get("onboarding_id"), limit=limit)
    return jsonify({"escalations": [r.to_dict() for r in records], "total": len(records)}), 200
