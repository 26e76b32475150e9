"""Job payload shapes accepted from granularity planners."""
from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from dialectic.models.generation_job import JobType

logger = logging.getLogger(__name__)

# Keys only the orchestrator may set; a planner emitting them is producing a malformed payload.
ORCHESTRATOR_ONLY_FIELDS = ("step_info",)


class PlannerMetadata(BaseModel):
    model_config = ConfigDict(extra="allow")

    recipe_step_id: str = Field(min_length=1)


class ContextForDocument(BaseModel):
    document_key: str = Field(min_length=1)
    content_to_include: dict[str, Any]


class JobPayloadBase(BaseModel):
    model_config = ConfigDict(extra="allow", protected_namespaces=())

    projectId: str = Field(min_length=1)
    sessionId: str = Field(min_length=1)
    stageSlug: str = Field(min_length=1)
    iterationNumber: int
    user_jwt: str = Field(min_length=1)
    model_id: str | None = None
    walletId: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _reject_orchestrator_fields(cls, data):
        if isinstance(data, dict):
            for key in ORCHESTRATOR_ONLY_FIELDS:
                if key in data:
                    raise ValueError(f"payload must not carry orchestrator field '{key}'")
        return data


class ExecuteJobPayload(JobPayloadBase):
    prompt_template_id: str = Field(min_length=1)
    output_type: str = Field(min_length=1)
    planner_metadata: PlannerMetadata
    canonicalPathParams: dict[str, Any]
    inputs: dict[str, Any] = {}
    document_key: str | None = None
    document_relationships: dict[str, Any] | None = None
    continuation_count: int | None = None
    target_contribution_id: str | None = None
    continueUntilComplete: bool | None = None
    sourceContributionId: str | None = None


class PlanJobPayload(JobPayloadBase):
    planner_metadata: PlannerMetadata
    context_for_documents: list[ContextForDocument] = Field(min_length=1)


class RenderJobPayload(JobPayloadBase):
    documentIdentity: str = Field(min_length=1)
    documentKey: str = Field(min_length=1)
    sourceContributionId: str | None = None
    template_filename: str | None = None


def classify_child_payload(payload: Any) -> str | None:
    """
    Return the job type a planner payload is valid for, or None when the
    payload is malformed and must be dropped.
    """
    if not isinstance(payload, dict):
        logger.warning("Dropping non-dict planner payload of type %s", type(payload).__name__)
        return None

    if "documentIdentity" in payload:
        job_type, model = JobType.RENDER, RenderJobPayload
    elif "context_for_documents" in payload:
        job_type, model = JobType.PLAN, PlanJobPayload
    else:
        job_type, model = JobType.EXECUTE, ExecuteJobPayload

    try:
        model.model_validate(payload)
    except ValidationError as exc:
        logger.warning(
            "Dropping malformed %s payload: %d validation error(s): %s",
            job_type,
            exc.error_count(),
            exc.errors()[0].get("msg") if exc.errors() else "",
        )
        return None
    return job_type
