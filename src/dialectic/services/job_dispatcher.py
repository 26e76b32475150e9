# src/dialectic/services/job_dispatcher.py

"""
Routes a claimed job to its runner and owns the retry policy.

PLAN and RENDER runners record their own failures; anything they let escape,
such as a store error, is written here as a terminal failure. EXECUTE
failures surface here as exceptions: retryable ones put the job back to
`pending` until `max_retries` is used up, everything else fails the job
outright.

Once a child reaches a terminal state and all of its siblings have too, the
parent PLAN job is moved to `pending_next_step` so a worker replans it.
"""

from __future__ import annotations

import logging

from opentelemetry import trace
from sqlalchemy.orm import Session

from dialectic.errors import ContextWindowError, DialecticError, InvalidJobPayloadError
from dialectic.metrics import jobs_processed_total
from dialectic.models.generation_job import GenerationJob, JobStatus, JobType
from dialectic.repositories.project_repository import ProjectRepository
from dialectic.repositories.prompt_repository import PromptRepository
from dialectic.schemas.model_call import ProviderConfig
from dialectic.services.complex_job_processor import process_complex_job
from dialectic.services.job_dependencies import JobDependencies
from dialectic.services.model_call_service import execute_model_call_and_save
from dialectic.services.notification_service import build_notification_payload, job_failed_error
from dialectic.services.render_job_processor import process_render_job

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


def _step_key(job: GenerationJob) -> str | None:
    return ((job.payload or {}).get("planner_metadata") or {}).get("recipe_step_key") or job.stage_slug


def process_execute_job(
    db: Session,
    job: GenerationJob,
    project_owner_user_id: str | None,
    deps: JobDependencies,
) -> dict:
    payload = job.payload or {}
    model_id = payload.get("model_id")
    if not model_id:
        raise InvalidJobPayloadError("EXECUTE job payload is missing model_id")

    provider_row = PromptRepository.get_provider(db, model_id)
    if provider_row is None:
        raise InvalidJobPayloadError(f"AI provider {model_id} not found or inactive")
    provider = ProviderConfig.from_row(provider_row)

    prompt = deps.assemble_prompt(db, job, download=deps.download)
    result = execute_model_call_and_save(db, job, prompt, provider, deps, project_owner_user_id)

    if not result["will_continue"] and project_owner_user_id:
        event = build_notification_payload(
            "execute_completed",
            job,
            _step_key(job),
            document_key=result.get("document_key"),
            modelId=provider.model_id,
        )
        deps.notifications.send_job_notification_event(event, project_owner_user_id)
    return result


def _handle_execute_failure(
    db: Session,
    job: GenerationJob,
    exc: Exception,
    project_owner_user_id: str | None,
    deps: JobDependencies,
) -> str:
    db.rollback()
    attempts = job.attempt_count or 0
    retryable = not isinstance(exc, DialecticError) or exc.retryable

    if retryable and attempts < job.max_retries:
        logger.warning(
            "EXECUTE job %s failed (attempt %d/%d), requeueing: %s",
            job.id,
            attempts + 1,
            job.max_retries,
            exc,
        )
        deps.jobs_repo.update(db, job.id, status=JobStatus.PENDING, attempt_count=attempts + 1)
        return "retried"

    if isinstance(exc, ContextWindowError):
        error = job_failed_error(exc.code, f"Context window limit exceeded: {exc}")
    elif retryable:
        error = job_failed_error("RETRY_LIMIT_EXCEEDED", f"Job failed after {attempts} retries: {exc}")
    else:
        error = job_failed_error(exc.code, str(exc))

    logger.error("EXECUTE job %s failed [%s]: %s", job.id, error["code"], error["message"])
    deps.jobs_repo.update(db, job.id, status=JobStatus.FAILED, error_details=error)
    if not project_owner_user_id:
        return "failed"
    event = build_notification_payload(
        "job_failed",
        job,
        _step_key(job),
        document_key=(job.payload or {}).get("document_key"),
        modelId=(job.payload or {}).get("model_id"),
        error=error,
    )
    deps.notifications.send_job_notification_event(event, project_owner_user_id)
    return "failed"


def _handle_runner_failure(
    db: Session,
    job: GenerationJob,
    exc: Exception,
    project_owner_user_id: str | None,
    deps: JobDependencies,
) -> str:
    """Terminal write for an error a PLAN or RENDER runner did not record itself."""
    db.rollback()
    code = exc.code if isinstance(exc, DialecticError) else "UNHANDLED_ERROR"
    error = job_failed_error(code, f"{job.job_type} job failed: {exc}")
    deps.jobs_repo.update(db, job.id, status=JobStatus.FAILED, error_details=error)
    if project_owner_user_id:
        event = build_notification_payload("job_failed", job, _step_key(job), error=error)
        deps.notifications.send_job_notification_event(event, project_owner_user_id)
    return "failed"


def wake_parent_if_ready(db: Session, parent_job_id: str | None, deps: JobDependencies) -> bool:
    if not parent_job_id:
        return False

    parent = deps.jobs_repo.get_by_id(db, parent_job_id)
    if parent is None or parent.status != JobStatus.WAITING_FOR_CHILDREN:
        return False

    children = deps.jobs_repo.list_children(db, parent_job_id)
    if any(child.status not in JobStatus.TERMINAL for child in children):
        return False

    deps.jobs_repo.update(db, parent_job_id, status=JobStatus.PENDING_NEXT_STEP)
    logger.info("All %d child job(s) of %s finished; parent queued for its next step", len(children), parent_job_id)
    return True


def process_job(db: Session, job: GenerationJob, deps: JobDependencies) -> str:
    """Run one claimed job. Returns the outcome label recorded in metrics."""
    owner_user_id = ProjectRepository.get_owner_user_id(db, (job.payload or {}).get("projectId"))

    with tracer.start_as_current_span("dispatcher.process_job") as span:
        span.set_attribute("job.id", str(job.id))
        span.set_attribute("job.type", job.job_type or "")

        if job.job_type in (JobType.PLAN, JobType.RENDER):
            runner = process_complex_job if job.job_type == JobType.PLAN else process_render_job
            try:
                runner(db, job, owner_user_id, deps)
                outcome = "processed"
            except Exception as exc:
                logger.exception("%s runner raised for job %s", job.job_type, job.id)
                outcome = _handle_runner_failure(db, job, exc, owner_user_id, deps)
        elif job.job_type == JobType.EXECUTE:
            try:
                process_execute_job(db, job, owner_user_id, deps)
                outcome = "completed"
            except Exception as exc:
                if not isinstance(exc, DialecticError):
                    logger.exception("Unexpected error while executing job %s", job.id)
                outcome = _handle_execute_failure(db, job, exc, owner_user_id, deps)
        else:
            message = f"Unknown job type: {job.job_type}"
            logger.error("Job %s: %s", job.id, message)
            deps.jobs_repo.update(
                db, job.id, status=JobStatus.FAILED, error_details=job_failed_error("UNKNOWN_JOB_TYPE", message)
            )
            outcome = "failed"

        span.set_attribute("job.outcome", outcome)

    jobs_processed_total.labels(job_type=job.job_type or "unknown", outcome=outcome).inc()

    refreshed = deps.jobs_repo.get_by_id(db, job.id)
    if refreshed is not None and refreshed.status in JobStatus.TERMINAL:
        wake_parent_if_ready(db, refreshed.parent_job_id, deps)
    return outcome
