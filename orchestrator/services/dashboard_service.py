"""
Onboarding dashboard metrics.

Aggregates portfolio KPIs across all onboardings:
  - onboarding counts by status, average time-to-value, completion rate
  - task totals and blockers
  - integrations by status
  - activity in the last 7 days
  - at-risk onboardings (blocked, or past go-live and not completed)
"""

import logging
import math
from datetime import datetime, time, timedelta, timezone

from orchestrator.models.onboarding import INTEGRATION_STATUSES
from orchestrator.services.escalation import UNKNOWN_CUSTOMER

logger = logging.getLogger(__name__)

ACTIVITY_WINDOW_DAYS = 7


def _pct(part, whole):
    return round(part * 100 / whole) if whole else 0


def _aware(value):
    if value is None:
        return None
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


class DashboardService:

    def __init__(self, *, customers, onboardings, tasks, integrations, clock=None):
        self.customers = customers
        self.onboardings = onboardings
        self.tasks = tasks
        self.integrations = integrations
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def get_dashboard(self):
        now = self._clock()
        onboardings = self.onboardings.list_by()
        tasks = self.tasks.list_by()
        integrations = self.integrations.list_by()

        by_status = {}
        for onboarding in onboardings:
            by_status[onboarding.status] = by_status.get(onboarding.status, 0) + 1
        completed = [o for o in onboardings if o.status == "completed"]
        ttv = [o.time_to_value_days for o in completed if o.time_to_value_days]

        since = now - timedelta(days=ACTIVITY_WINDOW_DAYS)
        completed_tasks = sum(1 for t in tasks if t.status == "completed")

        integrations_by_status = {status: 0 for status in INTEGRATION_STATUSES}
        for integration in integrations:
            integrations_by_status[integration.status] = integrations_by_status.get(integration.status, 0) + 1

        at_risk = self._at_risk(onboardings, now)
        return {
            "summary": {
                "total_onboardings": len(onboardings),
                "active_onboardings": by_status.get("in_progress", 0),
                "blocked_onboardings": by_status.get("blocked", 0),
                "completed_onboardings": len(completed),
                "avg_time_to_value_days": round(sum(ttv) / len(ttv)) if ttv else None,
                "completion_rate": _pct(len(completed), len(onboardings)),
            },
            "tasks": {
                "total_tasks": len(tasks),
                "completed_tasks": completed_tasks,
                "blocked_tasks": sum(1 for t in tasks if t.is_blocker),
                "completion_rate": _pct(completed_tasks, len(tasks)),
            },
            "integrations": {
                "total": len(integrations),
                "by_status": integrations_by_status,
            },
            "activity": {
                "recent_onboardings": sum(1 for o in onboardings if _aware(o.created_at) >= since),
                "recent_completions": sum(
                    1 for o in onboardings if o.completed_at and _aware(o.completed_at) >= since
                ),
            },
            "alerts": {
                "at_risk_count": len(at_risk),
                "at_risk_onboardings": at_risk,
            },
        }

    def _at_risk(self, onboardings, now):
        flagged = []
        for onboarding in onboardings:
            go_live = None
            if onboarding.go_live_date:
                go_live = datetime.combine(onboarding.go_live_date, time.min, tzinfo=timezone.utc)
            past_go_live = go_live is not None and go_live < now and onboarding.status != "completed"
            if onboarding.status != "blocked" and not past_go_live:
                continue
            customer = self.customers.get(onboarding.customer_id)
            days_overdue = math.ceil((now - go_live).total_seconds() / 86400) if past_go_live else 0
            flagged.append({
                "id": onboarding.id,
                "customer_name": customer.name if customer else UNKNOWN_CUSTOMER,
                "status": onboarding.status,
                "days_overdue": days_overdue,
            })
        return flagged
