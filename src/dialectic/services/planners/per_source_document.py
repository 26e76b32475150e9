import logging

from dialectic.errors import RecipeConfigurationError
from dialectic.models.generation_job import JobType
from dialectic.services.planners.common import execute_payload, plan_payload, require_step_fields

logger = logging.getLogger(__name__)

NAME = "planPerSourceDocument"


def plan_per_source_document(source_docs, parent_job, recipe_step, auth_token=None):
    """One child per source document produced by the parent's model."""
    require_step_fields(recipe_step, NAME)
    if not source_docs:
        raise RecipeConfigurationError(
            f"Invalid inputs for {NAME}: At least one source document is required."
        )

    parent_model_id = (parent_job.payload or {}).get("model_id")
    documents = [d for d in source_docs if not parent_model_id or d.model_id in (None, parent_model_id)]
    if not documents:
        logger.info("%s: no documents for model %s; nothing to plan", NAME, parent_model_id)
        return []

    if recipe_step.job_type == JobType.PLAN:
        return [plan_payload(parent_job, recipe_step, NAME)]

    payloads = []
    for document in documents:
        payloads.append(
            execute_payload(
                parent_job,
                recipe_step,
                [document],
                anchor=document,
                document_relationships={"source_group": document.source_group or document.id},
            )
        )
    return payloads
