"""
Task & blocker blueprint.

Endpoints:
    GET   /api/v1/onboardings/<id>/tasks        — list (optional ?status=)
    POST  /api/v1/onboardings/<id>/tasks        — create task
    GET   /api/v1/tasks/<task_id>               — single task
    PATCH /api/v1/tasks/<task_id>               — status / assignee
    GET   /api/v1/onboardings/<id>/blockers     — blocked tasks
    POST  /api/v1/tasks/<task_id>/blocker       — report blocker (escalates)
    POST  /api/v1/tasks/<task_id>/resolve       — resolve blocker
"""

from flask import Blueprint, jsonify, request

from orchestrator.blueprints import json_body
from orchestrator.services.container import get_services

task_bp = Blueprint("tasks", __name__, url_prefix="/api/v1")


# ── Tasks ────────────────────────────────────────────────────────────────────

@task_bp.route("/onboardings/<onboarding_id>/tasks", methods=["GET"])
def list_tasks(onboarding_id):
    tasks = get_services().tasks.list_tasks(onboarding_id, request.args.get("status"))
    return jsonify({"tasks": [t.to_dict() for t in tasks], "total": len(tasks)}), 200


@task_bp.route("/onboardings/<onboarding_id>/tasks", methods=["POST"])
def create_task(onboarding_id):
    task = get_services().tasks.create_task(onboarding_id, json_body())
    return jsonify(task.to_dict()), 201


@task_bp.route("/tasks/<task_id>", methods=["GET"])
def get_task(task_id):
    return jsonify(get_services().tasks.get_or_404(task_id).to_dict()), 200


@task_bp.route("/tasks/<task_id>", methods=["PATCH"])
def update_task(task_id):
    """Body: {status?, assigned_to?, blocker_reason? (required when status=blocked)}"""
    task = get_services().tasks.update_task(task_id, json_body())
    return jsonify(task.to_dict()), 200


# ── Blockers ─────────────────────────────────────────────────────────────────

@task_bp.route("/onboardings/<onboarding_id>/blockers", methods=["GET"])
def list_blockers(onboarding_id):
    tasks = get_services().tasks.list_blockers(onboarding_id)
    return jsonify({"blockers": [t.to_dict() for t in tasks], "total": len(tasks)}), 200


@task_bp.route("/tasks/<task_id>/blocker", methods=["POST"])
def report_blocker(task_id):
    """Body: {blocker_reason, impact_level?, reported_by?}"""
    data = json_body()
    result = get_services().tasks.report_blocker(
        task_id,
        data.get("blocker_reason"),
        impact_level=data.get("impact_level"),
        reported_by=data.get("reported_by"),
    )
    return jsonify({
        "task": result["task"].to_dict(),
        "escalated": result["escalated"],
        "notification": result["notification"],
        "escalation_error": result["escalation_error"],
    }), 200


@task_bp.route("/tasks/<task_id>/resolve", methods=["POST"])
def resolve_blocker(task_id):
    """Body: {resolution_notes?}"""
    result = get_services().tasks.resolve_blocker(task_id, json_body().get("resolution_notes"))
    result["task"] = result["task"].to_dict()
    return jsonify(result), 200
