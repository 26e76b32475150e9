"""RENDER job runner: validate the payload, render once, write one job update."""

from __future__ import annotations

import logging
from typing import Any

from opentelemetry import trace
from sqlalchemy.orm import Session

from dialectic.errors import DialecticError, RenderValidationError
from dialectic.models.generation_job import GenerationJob, JobStatus
from dialectic.services.job_dependencies import JobDependencies
from dialectic.services.notification_service import build_notification_payload, job_failed_error
from dialectic.utils.file_types import is_file_type

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

_REQUIRED_IDENTIFIERS = ("projectId", "sessionId", "stageSlug", "documentIdentity")


def _coerce_iteration_number(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def validate_render_payload(payload: dict[str, Any]) -> dict[str, Any]:
    """
    Checks fields in a fixed order and raises on the first problem, so the
    error message always names exactly one field.
    """
    for field in _REQUIRED_IDENTIFIERS:
        value = payload.get(field)
        if not isinstance(value, str) or not value.strip():
            raise RenderValidationError(f"Missing required render parameters: {field}")

    iteration_number = _coerce_iteration_number(payload.get("iterationNumber"))
    if iteration_number is None:
        raise RenderValidationError("iterationNumber is required and must be a number")

    document_key = payload.get("documentKey")
    if not is_file_type(document_key):
        raise RenderValidationError("documentKey must be a valid FileType")

    return {
        "projectId": payload["projectId"],
        "sessionId": payload["sessionId"],
        "iterationNumber": iteration_number,
        "stageSlug": payload["stageSlug"],
        "documentIdentity": payload["documentIdentity"],
        "documentKey": document_key,
        "sourceContributionId": payload.get("sourceContributionId"),
        "template_filename": payload.get("template_filename"),
    }


def process_render_job(
    db: Session,
    job: GenerationJob,
    project_owner_user_id: str | None,
    deps: JobDependencies,
) -> None:
    payload = job.payload or {}
    step_key = (payload.get("planner_metadata") or {}).get("recipe_step_key") or job.stage_slug

    def notify(event_type: str, **extra) -> None:
        if not project_owner_user_id:
            return
        event = build_notification_payload(
            event_type,
            job,
            step_key,
            document_key=payload.get("documentKey"),
            modelId=payload.get("model_id"),
            **extra,
        )
        deps.notifications.send_document_centric_notification(event, project_owner_user_id)

    def fail(code: str, message: str) -> None:
        error = job_failed_error(code, message)
        deps.jobs_repo.update(db, job.id, status=JobStatus.FAILED, error_details=error)
        notify("job_failed", error=error)

    with tracer.start_as_current_span("render.process_render_job") as span:
        span.set_attribute("job.id", str(job.id))

        try:
            params = validate_render_payload(payload)
        except RenderValidationError as exc:
            logger.warning("RENDER job %s rejected: %s", job.id, exc)
            fail(exc.code, str(exc))
            return

        notify("render_started")
        try:
            result = deps.renderer.render_document(db, params, job=job, owner_user_id=project_owner_user_id)
        except DialecticError as exc:
            logger.error("RENDER job %s failed: %s", job.id, exc)
            fail(exc.code, str(exc))
            return
        except Exception as exc:
            logger.exception("Renderer raised for RENDER job %s", job.id)
            fail("RENDER_FAILED", str(exc))
            return

        path_context = dict(result.get("pathContext") or {})
        deps.jobs_repo.update(
            db,
            job.id,
            status=JobStatus.COMPLETED,
            results={"pathContext": path_context},
        )
        notify("render_completed", latestRenderedResourceId=result.get("latestRenderedResourceId"))
        span.set_attribute("render.source_contribution_id", str(path_context.get("sourceContributionId", "")))

    logger.info("RENDER job %s completed for document %s", job.id, params["documentIdentity"])
