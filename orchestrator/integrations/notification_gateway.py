"""
Notification Gateway — webhook delivery of onboarding notifications.

All outbound notification traffic goes through this class. The payload is
POSTed as JSON to the configured workflow webhook; the webhook owns the
actual channel (email, chat, ...).

  - No webhook URL configured → the notification is logged and reported as
    delivered (development / testing).
  - Timeout: NOTIFICATION_TIMEOUT seconds (default 10).
  - No retry: a failed delivery is reported in the result and the caller
    decides what to do.

Testability: pass a mock `session` to NotificationGateway() in tests instead
of letting it create a real requests.Session internally.
"""

from __future__ import annotations

import logging
import time
from urllib.parse import urlsplit

import requests

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = 10


class NotificationResult:
    """Structured return value from NotificationGateway.deliver.

    Attributes:
        success:          True if the webhook accepted the payload (or it was logged).
        notification_id:  Delivery id (``n8n-<ms>`` for webhook, ``log-<ms>`` for log-only).
        error:            Human-readable error message or None.
        status_code:      HTTP status code (None if not sent or network failure).
    """

    def __init__(
        self,
        success: bool,
        notification_id: str | None = None,
        error: str | None = None,
        status_code: int | None = None,
    ) -> None:
        self.success = success
        self.notification_id = notification_id
        self.error = error
        self.status_code = status_code

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "notification_id": self.notification_id,
            "error": self.error,
        }

    def __repr__(self):
        return f"<NotificationResult success={self.success} id={self.notification_id}>"


def _stamp() -> int:
    return int(time.time() * 1000)


class NotificationGateway:
    """Webhook notification transport.

    Usage:
        gateway = NotificationGateway(webhook_url=app.config["NOTIFICATION_WEBHOOK_URL"])
        result = gateway.deliver(payload.to_dict())
    """

    def __init__(
        self,
        webhook_url: str | None = None,
        timeout: int = _DEFAULT_TIMEOUT,
        session: requests.Session | None = None,
    ) -> None:
        self.webhook_url = webhook_url
        self.timeout = timeout
        self._session: requests.Session | None = session

    @property
    def session(self) -> requests.Session:
        """Return (or lazily create) the requests.Session."""
        if self._session is None:
            self._session = requests.Session()
        return self._session

    def deliver(self, payload: dict) -> NotificationResult:
        """Send one notification payload.

        Returns:
            NotificationResult — always returns (never raises). Callers check .success.
        """
        recipients = payload.get("recipients") or []
        if not self.webhook_url:
            logger.info(
                "Notification (log only) type=%s recipients=%s subject=%s",
                payload.get("type"), ",".join(recipients), payload.get("subject"),
                extra={"event_type": payload.get("type"), "urgency": payload.get("urgency")},
            )
            return NotificationResult(success=True, notification_id=f"log-{_stamp()}")

        try:
            resp = self.session.post(
                self.webhook_url,
                json=payload,
                headers={"Content-Type": "application/json"},
                timeout=self.timeout,
            )
        except requests.Timeout:
            logger.warning("Notification webhook timed out after %ss type=%s",
                           self.timeout, payload.get("type"))
            return NotificationResult(success=False, error=f"Request timed out after {self.timeout}s")
        except requests.RequestException as exc:
            logger.warning("Notification webhook network error type=%s error=%s",
                           payload.get("type"), exc)
            return NotificationResult(success=False, error=str(exc)[:500])

        if not resp.ok:
            error = f"Webhook failed: HTTP {resp.status_code}"
            logger.warning("Notification webhook rejected payload type=%s status=%d",
                           payload.get("type"), resp.status_code)
            return NotificationResult(success=False, error=error, status_code=resp.status_code)

        logger.info("Notification delivered type=%s recipients=%d",
                    payload.get("type"), len(recipients))
        return NotificationResult(
            success=True,
            notification_id=f"n8n-{_stamp()}",
            status_code=resp.status_code,
        )

    def ping(self) -> dict:
        """Probe the webhook host's health endpoint.

        Returns ``{"status": "healthy"|"unhealthy"|"not_configured", "latency_ms", "error"?}``.
        """
        if not self.webhook_url:
            return {"status": "not_configured", "latency_ms": 0}
        parts = urlsplit(self.webhook_url)
        url = f"{parts.scheme}://{parts.netloc}/healthz"
        t0 = time.perf_counter()
        try:
            resp = self.session.get(url, timeout=min(self.timeout, 5))
        except requests.RequestException as exc:
            return {"status": "unhealthy", "latency_ms": 0, "error": str(exc)[:500]}
        latency = round((time.perf_counter() - t0) * 1000, 1)
        if not resp.ok:
            return {"status": "unhealthy", "latency_ms": latency, "error": f"HTTP {resp.status_code}"}
        return {"status": "healthy", "latency_ms": latency}
