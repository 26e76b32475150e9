"""
Notification gateway for job lifecycle events.

Events are stored as in-app notifications for the project owner and, when
DIALECTIC_NOTIFICATION_WEBHOOK_URL is set, POSTed to that webhook.

Delivery is best effort: each event gets at most
DIALECTIC_NOTIFICATION_MAX_ATTEMPTS tries and is then logged and dropped.
A notification failure never propagates into job processing.
"""

from __future__ import annotations

import logging
import os
from typing import Any

import httpx
from opentelemetry import trace
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from dialectic.metrics import notifications_total
from dialectic.models.generation_job import GenerationJob
from dialectic.repositories.notification_repository import NotificationRepository

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


def build_notification_payload(
    event_type: str,
    job: GenerationJob,
    step_key: str | None,
    **extra: Any,
) -> dict[str, Any]:
    """
    Common envelope for every lifecycle event. Keys whose value is None are
    omitted, which is how PLAN-scoped events leave out modelId/document_key.
    """
    payload = job.payload or {}
    envelope = {
        "type": event_type,
        "sessionId": payload.get("sessionId") or job.session_id,
        "stageSlug": payload.get("stageSlug") or job.stage_slug,
        "iterationNumber": payload.get("iterationNumber") or job.iteration_number,
        "job_id": job.id,
        "step_key": step_key,
    }
    envelope.update(extra)
    return {key: value for key, value in envelope.items() if value is not None}


def job_failed_error(code: str, message: str) -> dict[str, str]:
    return {"code": code, "message": message}


class NotificationService:
    """Delivers lifecycle events to a target user."""

    def __init__(
        self,
        db: Session,
        webhook_url: str | None = None,
        max_attempts: int | None = None,
        http_client: httpx.Client | None = None,
    ):
        self.db = db
        self.webhook_url = webhook_url if webhook_url is not None else os.getenv("DIALECTIC_NOTIFICATION_WEBHOOK_URL")
        self.max_attempts = max_attempts or int(os.getenv("DIALECTIC_NOTIFICATION_MAX_ATTEMPTS", "2"))
        self.http_client = http_client

    def send_job_notification_event(self, payload: dict[str, Any], target_user_id: str | None) -> bool:
        """Job-level events (execute_completed, retry exhaustion)."""
        return self._deliver(payload, target_user_id)

    def send_document_centric_notification(self, payload: dict[str, Any], target_user_id: str | None) -> bool:
        """Planner, execute-chunk and render events scoped to a stage document."""
        return self._deliver(payload, target_user_id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _deliver(self, payload: dict[str, Any], target_user_id: str | None) -> bool:
        event_type = payload.get("type", "unknown")

        if not target_user_id:
            logger.debug("No target user for %s on job=%s; notification suppressed", event_type, payload.get("job_id"))
            notifications_total.labels(event_type=event_type, outcome="suppressed").inc()
            return False

        with tracer.start_as_current_span("notifications.deliver") as span:
            span.set_attribute("notification.type", event_type)
            span.set_attribute("job.id", str(payload.get("job_id", "")))

            last_error: Exception | None = None
            stored = False
            for attempt in range(1, self.max_attempts + 1):
                try:
                    if not stored:
                        NotificationRepository.create(self.db, user_id=target_user_id, type=event_type, data=payload)
                        stored = True
                    if self.webhook_url:
                        self._post_webhook(payload, target_user_id)
                except (SQLAlchemyError, httpx.HTTPError) as exc:
                    last_error = exc
                    if isinstance(exc, SQLAlchemyError):
                        self.db.rollback()
                    logger.warning(
                        "Notification %s attempt %d/%d failed: %s",
                        event_type,
                        attempt,
                        self.max_attempts,
                        exc,
                    )
                    continue

                span.set_attribute("notification.attempts", attempt)
                notifications_total.labels(event_type=event_type, outcome="sent").inc()
                logger.info("Sent %s notification to user=%s job=%s", event_type, target_user_id, payload.get("job_id"))
                return True

            span.set_attribute("notification.dropped", True)

        notifications_total.labels(event_type=event_type, outcome="dropped").inc()
        logger.error(
            "Dropping %s notification for job=%s after %d attempt(s): %s",
            event_type,
            payload.get("job_id"),
            self.max_attempts,
            last_error,
        )
        return False

    def _post_webhook(self, payload: dict[str, Any], target_user_id: str) -> None:
        body = {"target_user_id": target_user_id, "event": payload}
        if self.http_client is not None:
            response = self.http_client.post(self.webhook_url, json=body)
            response.raise_for_status()
            return
        with httpx.Client(timeout=10.0) as client:
            response = client.post(self.webhook_url, json=body)
            response.raise_for_status()
