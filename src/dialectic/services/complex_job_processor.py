"""
PLAN job orchestration.

Walks the stage's recipe DAG, plans the next ready step into child jobs and
advances the PLAN job's status. Every failure path ends in an explicit
`failed` write plus a single `job_failed` notification.
"""

from __future__ import annotations

import logging

from opentelemetry import trace
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from dialectic.errors import ContextWindowError, DialecticError, RecipeConfigurationError
from dialectic.metrics import child_jobs_enqueued_total
from dialectic.models.generation_job import GenerationJob, JobStatus
from dialectic.schemas.recipe import RecipeStep, StageRecipe
from dialectic.services.job_dependencies import JobDependencies
from dialectic.services.notification_service import build_notification_payload, job_failed_error

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


def load_active_recipe(db: Session, stage_slug: str, recipe_repo) -> StageRecipe:
    stage = recipe_repo.get_stage(db, stage_slug)
    if stage is None:
        raise RecipeConfigurationError(f"Stage '{stage_slug}' not found.")
    if not stage.active_recipe_instance_id:
        raise RecipeConfigurationError(f"Stage '{stage_slug}' has no active recipe instance.")

    instance = recipe_repo.get_instance(db, stage.active_recipe_instance_id)
    if instance is None:
        raise RecipeConfigurationError(
            f"Active recipe instance {stage.active_recipe_instance_id} for stage '{stage_slug}' not found."
        )

    recipe = recipe_repo.load_recipe(db, stage, instance)
    if not recipe.steps:
        raise RecipeConfigurationError(f"No recipe steps found for stage '{stage_slug}'.")
    return recipe


def recipe_step_id_of(job: GenerationJob) -> str | None:
    metadata = (job.payload or {}).get("planner_metadata") or {}
    return metadata.get("recipe_step_id")


def completed_step_ids(children: list[GenerationJob]) -> set[str]:
    """Steps count as done only through `planner_metadata.recipe_step_id`, never by slug."""
    return {
        step_id
        for step_id in (recipe_step_id_of(child) for child in children if child.status == JobStatus.COMPLETED)
        if step_id
    }


def find_next_step(recipe: StageRecipe, done: set[str]) -> RecipeStep | None:
    """First not-done step, in DAG order, whose predecessors are all done."""
    for step in recipe.ordered_steps():
        if step.id in done:
            continue
        if all(predecessor in done for predecessor in recipe.predecessors(step.id)):
            return step
    return None


class _PlanRun:
    """State for one pass of a PLAN job through the orchestrator."""

    def __init__(self, db: Session, job: GenerationJob, owner_user_id: str | None, deps: JobDependencies):
        self.db = db
        self.job = job
        self.owner_user_id = owner_user_id
        self.deps = deps
        self.stage_slug = (job.payload or {}).get("stageSlug") or job.stage_slug

    def notify(self, event_type: str, step_key: str | None, **extra) -> None:
        if not self.owner_user_id:
            return
        payload = build_notification_payload(event_type, self.job, step_key or self.stage_slug, **extra)
        self.deps.notifications.send_document_centric_notification(payload, self.owner_user_id)

    def fail(self, code: str, message: str, step_key: str | None = None) -> None:
        logger.error("PLAN job %s failed [%s]: %s", self.job.id, code, message)
        self.deps.jobs_repo.update(
            self.db,
            self.job.id,
            status=JobStatus.FAILED,
            error_details=job_failed_error(code, message),
        )
        self.notify("job_failed", step_key, error=job_failed_error(code, message))

    def complete(self, step_key: str | None, reason: str) -> None:
        self.deps.jobs_repo.update(
            self.db,
            self.job.id,
            status=JobStatus.COMPLETED,
            results={"reason": reason},
        )
        self.notify("planner_completed", step_key)
        logger.info("PLAN job %s completed: %s", self.job.id, reason)


def process_complex_job(
    db: Session,
    job: GenerationJob,
    project_owner_user_id: str | None,
    deps: JobDependencies,
) -> None:
    run = _PlanRun(db, job, project_owner_user_id, deps)

    with tracer.start_as_current_span("orchestrator.process_complex_job") as span:
        span.set_attribute("job.id", str(job.id))
        span.set_attribute("stage.slug", run.stage_slug or "")

        try:
            recipe = load_active_recipe(db, run.stage_slug, deps.recipe_repo)
        except RecipeConfigurationError as exc:
            run.fail(exc.code, str(exc))
            return

        children = deps.jobs_repo.list_children(db, job.id)
        done = completed_step_ids(children) | {step.id for step in recipe.steps if step.is_skipped}

        if all(step.id in done for step in recipe.steps):
            run.complete(None, "all recipe steps completed")
            return

        step = find_next_step(recipe, done)
        if step is None:
            run.fail(
                "RECIPE_BLOCKED",
                f"No runnable recipe step for stage '{run.stage_slug}': remaining steps have unmet dependencies.",
            )
            return
        span.set_attribute("recipe.step_key", step.step_key)

        step_children = [child for child in children if recipe_step_id_of(child) == step.id]
        if any(child.status not in JobStatus.TERMINAL for child in step_children):
            logger.info("Step %s of job %s still has running children; waiting", step.step_key, job.id)
            deps.jobs_repo.update(db, job.id, status=JobStatus.WAITING_FOR_CHILDREN)
            return
        if step_children:
            run.fail(
                "STEP_FAILED",
                f"Recipe step '{step.step_key}' has no successful child jobs.",
                step.step_key,
            )
            return

        run.notify("planner_started", step.step_key)

        auth_token = (job.payload or {}).get("user_jwt")
        try:
            child_jobs = deps.plan_complex_stage(db, job, step, auth_token)
        except ContextWindowError as exc:
            run.fail(exc.code, f"Context window limit exceeded: {exc}", step.step_key)
            return
        except DialecticError as exc:
            run.fail(exc.code, str(exc), step.step_key)
            return
        except Exception as exc:
            logger.exception("Planner raised for job %s step %s", job.id, step.step_key)
            run.fail("PLANNING_FAILED", str(exc), step.step_key)
            return

        if not child_jobs:
            run.complete(step.step_key, f"step '{step.step_key}' produced no child jobs")
            return

        try:
            deps.jobs_repo.insert_many(db, child_jobs)
        except SQLAlchemyError as exc:
            db.rollback()
            run.fail("CHILD_INSERT_FAILED", f"Failed to insert child jobs: {exc}", step.step_key)
            return

        for child in child_jobs:
            child_jobs_enqueued_total.labels(job_type=child.job_type).inc()

        try:
            deps.jobs_repo.update(db, job.id, status=JobStatus.WAITING_FOR_CHILDREN)
        except SQLAlchemyError as exc:
            db.rollback()
            run.fail("PARENT_UPDATE_FAILED", f"Failed to update parent job status: {exc}", step.step_key)
            return

        span.set_attribute("planner.child_count", len(child_jobs))

    logger.info(
        "PLAN job %s waiting on %d child job(s) for step=%s",
        job.id,
        len(child_jobs),
        step.step_key,
    )
