"""
Audit ledger blueprint (read-only; records are written by the services).

Endpoints:
    GET /api/v1/audit                                     — filtered query
    GET /api/v1/audit/summary                             — aggregate counts
    GET /api/v1/audit/entity/<entity_type>/<entity_id>    — one entity's trail
    GET /api/v1/audit/onboarding/<onboarding_id>          — everything for one onboarding

Query params (list + summary):
    entity_type, entity_id, event_type, onboarding_id, source,
    date_from, date_to (ISO date or timestamp), limit (1-1000, default 100), offset
"""

from flask import Blueprint, jsonify, request

from orchestrator.services.audit_ledger import DEFAULT_QUERY_LIMIT
from orchestrator.services.container import get_services

audit_bp = Blueprint("audit", __name__, url_prefix="/api/v1")

_QUERY_KEYS = ("entity_type", "entity_id", "event_type", "onboarding_id", "source",
               "date_from", "date_to", "limit", "offset")


def _filters():
    return {key: request.args[key] for key in _QUERY_KEYS if request.args.get(key)}


@audit_bp.route("/audit", methods=["GET"])
def list_audit_records():
    ledger = get_services().ledger
    filters = _filters()
    records = ledger.query(filters)
    return jsonify({
        "audit_logs": [r.to_dict() for r in records],
        "total": ledger.count(filters),
        "limit": int(filters.get("limit", DEFAULT_QUERY_LIMIT)),
        "offset": int(filters.get("offset", 0)),
    }), 200


@audit_bp.route("/audit/summary", methods=["GET"])
def audit_summary():
    return jsonify(get_services().ledger.summarize(_filters())), 200


@audit_bp.route("/audit/entity/<entity_type>/<entity_id>", methods=["GET"])
def entity_trail(entity_type, entity_id):
    records = get_services().ledger.get_entity_trail(entity_type, entity_id, request.args.get("limit"))
    return jsonify({
        "entity_type": entity_type,
        "entity_id": entity_id,
        "audit_trail": [r.to_dict() for r in records],
        "total": len(records),
    }), 200


@audit_bp.route("/audit/onboarding/<onboarding_id>", methods=["GET"])
def onboarding_trail(onboarding_id):
    records = get_services().ledger.get_onboarding_trail(onboarding_id, request.args.get("limit"))
    return jsonify({
        "onboarding_id": onboarding_id,
        "audit_trail": [r.to_dict() for r in records],
        "total": len(records),
    }), 200
