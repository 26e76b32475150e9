"""
Expands one recipe step of a PLAN job into child job rows.

    plan_complex_stage(db, parent_job, recipe_step, auth_token) -> [GenerationJob]

Nothing is persisted here; the orchestrator inserts the returned rows.
"""

from __future__ import annotations

import logging

from opentelemetry import trace
from sqlalchemy.orm import Session

from dialectic.errors import InvalidJobPayloadError, RecipeConfigurationError
from dialectic.models.generation_job import GenerationJob, JobStatus
from dialectic.schemas.payloads import classify_child_payload
from dialectic.schemas.recipe import RecipeStep
from dialectic.services.planners import PlannerFn, get_granularity_planner
from dialectic.services.source_document_resolver import ResolutionContext, SourceDocumentResolver

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

# Context every descendant shares with the root PLAN job's payload.
INHERITED_PAYLOAD_FIELDS = ("projectId", "sessionId", "stageSlug", "iterationNumber", "user_jwt")


def _validate_recipe_step(recipe_step: RecipeStep) -> None:
    if recipe_step.is_skipped:
        raise RecipeConfigurationError(
            f"Recipe step '{recipe_step.step_key}' is marked as skipped and must not be planned."
        )

    deprecated = recipe_step.deprecated_fields()
    if deprecated:
        raise RecipeConfigurationError(
            f"Recipe step '{recipe_step.step_key}' uses deprecated field(s) {deprecated}; "
            f"use execution_order and prompt_template_id instead."
        )

    if not recipe_step.granularity_strategy:
        raise RecipeConfigurationError(
            f"Recipe step '{recipe_step.step_key}' is missing granularity_strategy."
        )

    if not recipe_step.inputs_required:
        raise RecipeConfigurationError(
            f"Recipe step '{recipe_step.step_key}' is missing inputs_required."
        )


def _validate_parent_payload(parent_job: GenerationJob) -> None:
    payload = parent_job.payload or {}
    for field in ("user_jwt", "stageSlug"):
        value = payload.get(field)
        if not isinstance(value, str) or not value:
            raise InvalidJobPayloadError(
                f"Parent job {parent_job.id} payload is missing required field '{field}'"
            )


def _build_child(parent_job: GenerationJob, job_type: str, payload: dict) -> GenerationJob:
    parent_payload = parent_job.payload or {}
    child_payload = dict(payload)
    for field in INHERITED_PAYLOAD_FIELDS:
        child_payload[field] = parent_payload.get(field)

    return GenerationJob(
        parent_job_id=parent_job.id,
        session_id=parent_job.session_id,
        user_id=parent_job.user_id,
        stage_slug=parent_job.stage_slug,
        iteration_number=parent_job.iteration_number,
        job_type=job_type,
        status=JobStatus.PENDING,
        attempt_count=0,
        max_retries=parent_job.max_retries if parent_job.max_retries is not None else 3,
        is_test_job=bool(parent_job.is_test_job),
        payload=child_payload,
    )


def plan_complex_stage(
    db: Session,
    parent_job: GenerationJob,
    recipe_step: RecipeStep,
    auth_token: str | None,
    *,
    resolver: SourceDocumentResolver | None = None,
    planners: dict[str, PlannerFn] | None = None,
) -> list[GenerationJob]:
    with tracer.start_as_current_span("planner.plan_complex_stage") as span:
        span.set_attribute("job.id", str(parent_job.id))
        span.set_attribute("recipe.step_key", recipe_step.step_key)
        span.set_attribute("recipe.granularity_strategy", recipe_step.granularity_strategy or "")

        _validate_recipe_step(recipe_step)
        _validate_parent_payload(parent_job)

        resolver = resolver or SourceDocumentResolver(db)
        source_docs = resolver.find_for_rules(
            recipe_step.inputs_required,
            ResolutionContext.from_job(parent_job),
            auth_token,
        )
        span.set_attribute("planner.source_doc_count", len(source_docs))

        strategy = recipe_step.granularity_strategy
        planner = get_granularity_planner(strategy) if planners is None else planners.get(strategy)
        if planner is None:
            raise RecipeConfigurationError(
                f"No planner found for granularity strategy: {recipe_step.granularity_strategy}"
            )

        payloads = planner(source_docs, parent_job, recipe_step, auth_token) or []

        children: list[GenerationJob] = []
        for index, payload in enumerate(payloads):
            job_type = classify_child_payload(payload)
            if job_type is None:
                logger.warning(
                    "Dropped malformed payload %d from strategy=%s for job=%s",
                    index,
                    recipe_step.granularity_strategy,
                    parent_job.id,
                )
                continue
            children.append(_build_child(parent_job, job_type, payload))

        span.set_attribute("planner.child_count", len(children))

    logger.info(
        "Planned %d child job(s) (%d payload(s)) for step=%s job=%s",
        len(children),
        len(payloads),
        recipe_step.step_key,
        parent_job.id,
    )
    return children
