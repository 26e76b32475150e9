"""Payload builders shared by the granularity planners."""

from __future__ import annotations

from typing import Any

from dialectic.errors import InvalidJobPayloadError, RecipeConfigurationError
from dialectic.models.generation_job import GenerationJob, JobType
from dialectic.schemas.documents import SourceDocument
from dialectic.schemas.recipe import RecipeStep

# Parent payload keys copied onto every child when present.
_OPTIONAL_INHERITED_KEYS = (
    "model_slug",
    "continueUntilComplete",
    "maxRetries",
    "is_test_job",
)


def require_parent_field(parent_job: GenerationJob, field: str) -> Any:
    value = (parent_job.payload or {}).get(field)
    if value is None or (isinstance(value, str) and not value):
        raise InvalidJobPayloadError(f"Parent job payload is missing required field '{field}'")
    return value


def require_step_fields(recipe_step: RecipeStep, planner_name: str) -> None:
    if not recipe_step.prompt_template_id:
        raise RecipeConfigurationError(
            f"Invalid recipe step for {planner_name}: prompt_template_id is missing."
        )
    if not recipe_step.output_type:
        raise RecipeConfigurationError(
            f"Invalid recipe step for {planner_name}: output_type is missing."
        )
    if recipe_step.job_type not in (JobType.PLAN, JobType.EXECUTE):
        raise RecipeConfigurationError(
            f"{planner_name} requires job_type to be 'PLAN' or 'EXECUTE', received: {recipe_step.job_type}"
        )


def base_payload(parent_job: GenerationJob) -> dict[str, Any]:
    payload = parent_job.payload or {}
    child = {
        "projectId": payload.get("projectId"),
        "sessionId": payload.get("sessionId"),
        "stageSlug": payload.get("stageSlug"),
        "iterationNumber": payload.get("iterationNumber"),
        "model_id": payload.get("model_id"),
        "user_jwt": require_parent_field(parent_job, "user_jwt"),
        "walletId": payload.get("walletId"),
    }
    for key in _OPTIONAL_INHERITED_KEYS:
        if payload.get(key) is not None:
            child[key] = payload[key]
    return child


def output_document_key(recipe_step: RecipeStep) -> str:
    """First declared output document, else the step's output type."""
    outputs = recipe_step.outputs_required or {}
    for entry in outputs.get("documents") or []:
        if isinstance(entry, dict) and entry.get("document_key"):
            return entry["document_key"]
    return recipe_step.output_type


def planner_metadata(recipe_step: RecipeStep) -> dict[str, Any]:
    return {
        "recipe_step_id": recipe_step.id,
        "recipe_step_key": recipe_step.step_key,
    }


def canonical_path_params(
    recipe_step: RecipeStep,
    documents: list[SourceDocument],
    anchor: SourceDocument | None = None,
    paired_model_slug: str | None = None,
) -> dict[str, Any]:
    anchor = anchor or (documents[0] if documents else None)
    model_slugs = sorted({d.model_name or d.model_id for d in documents if d.model_name or d.model_id})
    params = {
        "contributionType": recipe_step.output_type,
        "sourceModelSlugs": model_slugs,
    }
    if anchor is not None:
        params["sourceAnchorType"] = anchor.type
        params["sourceAnchorModelSlug"] = anchor.model_name or anchor.model_id
        params["sourceAttemptCount"] = 0
    if paired_model_slug:
        params["pairedModelSlug"] = paired_model_slug
    return params


def inputs_for(documents: list[SourceDocument]) -> dict[str, Any]:
    """`{<type>_id: id}` for the first document of each type, plus all ids in order."""
    inputs: dict[str, Any] = {}
    for document in documents:
        inputs.setdefault(f"{document.type}_id", document.id)
    inputs["document_ids"] = [document.id for document in documents]
    return inputs


def execute_payload(
    parent_job: GenerationJob,
    recipe_step: RecipeStep,
    documents: list[SourceDocument],
    *,
    document_relationships: dict[str, Any] | None = None,
    anchor: SourceDocument | None = None,
    paired_model_slug: str | None = None,
) -> dict[str, Any]:
    payload = base_payload(parent_job)
    payload.update({
        "prompt_template_id": recipe_step.prompt_template_id,
        "output_type": recipe_step.output_type,
        "document_key": output_document_key(recipe_step),
        "canonicalPathParams": canonical_path_params(recipe_step, documents, anchor, paired_model_slug),
        "inputs": inputs_for(documents),
        "planner_metadata": planner_metadata(recipe_step),
    })
    if document_relationships:
        payload["document_relationships"] = document_relationships
    if recipe_step.inputs_relevance:
        payload["inputs_relevance"] = [rule.model_dump(exclude_none=True) for rule in recipe_step.inputs_relevance]
    return payload


def plan_payload(parent_job: GenerationJob, recipe_step: RecipeStep, planner_name: str) -> dict[str, Any]:
    """A PLAN child carrying the step's `context_for_documents`."""
    outputs = recipe_step.outputs_required
    if not outputs:
        raise RecipeConfigurationError(
            f"{planner_name} requires recipeStep.outputs_required.context_for_documents for PLAN jobs, "
            f"but outputs_required is missing"
        )
    entries = outputs.get("context_for_documents")
    if not isinstance(entries, list) or not entries:
        raise RecipeConfigurationError(
            f"{planner_name} requires recipeStep.outputs_required.context_for_documents "
            f"to be a non-empty array for PLAN jobs"
        )
    for index, entry in enumerate(entries):
        if not isinstance(entry, dict) or not entry.get("document_key"):
            raise RecipeConfigurationError(
                f"{planner_name} requires context_for_documents[{index}].document_key to be a non-empty string"
            )
        if not isinstance(entry.get("content_to_include"), dict):
            raise RecipeConfigurationError(
                f"{planner_name} requires context_for_documents[{index}].content_to_include to be an object"
            )

    payload = base_payload(parent_job)
    payload.update({
        "context_for_documents": [
            {"document_key": e["document_key"], "content_to_include": e["content_to_include"]}
            for e in entries
        ],
        "planner_metadata": planner_metadata(recipe_step),
    })
    return payload


def group_by_source_group(documents: list[SourceDocument], fallback_to_id: bool) -> dict[str, list[SourceDocument]]:
    groups: dict[str, list[SourceDocument]] = {}
    for document in documents:
        key = document.source_group or (document.id if fallback_to_id else None)
        if key is None:
            continue
        groups.setdefault(key, []).append(document)
    return groups
