"""
Onboarding Orchestrator
Tests — Escalation runs + Audit API (SQLite).

Covers:
    - escalation run per onboarding and across active onboardings
    - once-per-day claim survives repeated runs (unique dedup_key)
    - escalation history endpoint
    - audit query filters, pagination, summary, entity trail
    - CLI commands
"""

from datetime import datetime, timedelta, timezone

from orchestrator.models import db as _db
from orchestrator.models.onboarding import OnboardingTask


def _utc_today():
    return datetime.now(timezone.utc).date()


def _create(client, payload):
    res = client.post("/api/v1/onboardings", json=payload)
    assert res.status_code == 201, res.get_json()
    return res.get_json()


def _make_overdue(task_id, days):
    task = _db.session.get(OnboardingTask, task_id)
    task.due_date = _utc_today() - timedelta(days=days)
    _db.session.commit()


def _push_due_dates(body, days=30):
    for t in body["tasks"]:
        _db.session.get(OnboardingTask, t["id"]).due_date = _utc_today() + timedelta(days=days)
    _db.session.commit()


def _task_id(body, task_type):
    return next(t["id"] for t in body["tasks"] if t["task_type"] == task_type)


# ═════════════════════════════════════════════════════════════════════════════
# Escalations
# ═════════════════════════════════════════════════════════════════════════════

class TestEscalationAPI:
    def test_run_escalates_once_per_day(self, client, gateway, onboarding_payload):
        body = _create(client, onboarding_payload)
        onboarding_id = body["onboarding"]["id"]
        _push_due_dates(body)
        _make_overdue(_task_id(body, "sis_setup"), 10)

        first = client.post(f"/api/v1/onboardings/{onboarding_id}/escalations/run").get_json()
        second = client.post(f"/api/v1/onboardings/{onboarding_id}/escalations/run").get_json()

        assert first["escalations_triggered"] == 1
        assert first["errors"] == []
        assert second["escalations_triggered"] == 0
        assert second["skipped_duplicates"] == 1
        assert len(gateway.of_type("task_escalated")) == 1

    def test_explicit_date_runs_every_overdue_task(self, client, gateway, onboarding_payload):
        body = _create(client, onboarding_payload)
        far = (_utc_today() + timedelta(days=365)).isoformat()

        res = client.post(f"/api/v1/escalations/run?date={far}")

        assert res.status_code == 200
        data = res.get_json()
        assert data["escalations_triggered"] == len(body["tasks"])
        assert data["results"][0]["onboarding_id"] == body["onboarding"]["id"]
        assert len(gateway.of_type("task_escalated")) == len(body["tasks"])

    def test_completed_onboardings_are_not_run(self, client, onboarding_payload):
        body = _create(client, onboarding_payload)
        client.patch(f"/api/v1/onboardings/{body['onboarding']['id']}", json={"status": "completed"})
        far = (_utc_today() + timedelta(days=365)).isoformat()
        data = client.post(f"/api/v1/escalations/run?date={far}").get_json()
        assert data == {"escalations_triggered": 0, "results": []}

    def test_history(self, client, onboarding_payload):
        body = _create(client, onboarding_payload)
        onboarding_id = body["onboarding"]["id"]
        _push_due_dates(body)
        _make_overdue(_task_id(body, "sis_setup"), 10)
        client.post(f"/api/v1/tasks/{_task_id(body, 'api_setup')}/blocker", json={"blocker_reason": "No sandbox"})
        client.post(f"/api/v1/onboardings/{onboarding_id}/escalations/run")

        data = client.get(f"/api/v1/escalations?onboarding_id={onboarding_id}").get_json()
        assert data["total"] == 2
        assert {e["event_type"] for e in data["escalations"]} == {"escalation_triggered", "blocker_escalated"}

    def test_reminders(self, client, gateway, onboarding_payload):
        body = _create(client, onboarding_payload)
        onboarding_id = body["onboarding"]["id"]
        _push_due_dates(body)
        task = _db.session.get(OnboardingTask, _task_id(body, "timeline_planning"))
        task.due_date = _utc_today() + timedelta(days=1)
        _db.session.commit()

        res = client.post(f"/api/v1/onboardings/{onboarding_id}/reminders", json={"within_days": 2})

        assert res.status_code == 200
        assert res.get_json()["reminders_sent"] == 1
        assert gateway.of_type("task_reminder")[0]["recipients"] == ["pat@northwind.edu"]

    def test_bad_date_400(self, client):
        assert client.post("/api/v1/escalations/run?date=tomorrow").status_code == 400

    def test_unknown_onboarding_404(self, client):
        assert client.post("/api/v1/onboardings/missing/escalations/run").status_code == 404


# ═════════════════════════════════════════════════════════════════════════════
# Audit
# ═════════════════════════════════════════════════════════════════════════════

class TestAuditAPI:
    def test_query_filters_and_pagination(self, client, onboarding_payload):
        _create(client, onboarding_payload)

        data = client.get("/api/v1/audit?event_type=task_created&limit=3&offset=1").get_json()
        assert data["total"] == 10
        assert len(data["audit_logs"]) == 3
        assert data["limit"] == 3
        assert data["offset"] == 1
        assert all(r["event_type"] == "task_created" for r in data["audit_logs"])
        assert data["audit_logs"][0]["metadata"]["environment"] == "testing"

    def test_invalid_query_400(self, client):
        for query in ("limit=0", "limit=5000", "entity_type=invoice", "date_from=last-week"):
            res = client.get(f"/api/v1/audit?{query}")
            assert res.status_code == 400, query

    def test_entity_trail(self, client, onboarding_payload):
        body = _create(client, onboarding_payload)
        task_id = _task_id(body, "sis_setup")
        client.patch(f"/api/v1/tasks/{task_id}", json={"status": "in_progress"})

        data = client.get(f"/api/v1/audit/entity/task/{task_id}").get_json()
        assert data["total"] == 2
        assert data["audit_trail"][0]["event_type"] == "task_status_changed"
        assert data["audit_trail"][1]["event_type"] == "task_created"

    def test_summary(self, client, onboarding_payload):
        _create(client, onboarding_payload)
        data = client.get("/api/v1/audit/summary").get_json()
        assert data["total_events"] == 18
        assert data["events_by_type"]["task_created"] == 10
        assert data["events_by_entity"]["stakeholder"] == 4
        assert data["truncated"] is False

    def test_today_window(self, client, onboarding_payload):
        _create(client, onboarding_payload)
        today = _utc_today().isoformat()
        data = client.get(f"/api/v1/audit?date_from={today}&date_to={today}&limit=1000").get_json()
        assert data["total"] == 18


# ═════════════════════════════════════════════════════════════════════════════
# CLI
# ═════════════════════════════════════════════════════════════════════════════

def test_cli_run_escalations(app, client, onboarding_payload):
    body = _create(client, onboarding_payload)
    _push_due_dates(body)
    _make_overdue(_task_id(body, "sis_setup"), 10)

    result = app.test_cli_runner().invoke(args=["run-escalations"])

    assert result.exit_code == 0
    assert "Escalations triggered: 1" in result.output


def test_cli_send_reminders(app, client, onboarding_payload):
    body = _create(client, onboarding_payload)
    _push_due_dates(body)
    _db.session.get(OnboardingTask, _task_id(body, "kickoff_meeting")).due_date = _utc_today()
    _db.session.commit()

    result = app.test_cli_runner().invoke(args=["send-reminders", body["onboarding"]["id"], "--within-days", "0"])

    assert result.exit_code == 0
    assert "Reminders sent: 1" in result.output
