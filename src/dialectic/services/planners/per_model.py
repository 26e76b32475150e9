from dialectic.errors import InvalidJobPayloadError, RecipeConfigurationError
from dialectic.models.generation_job import JobType
from dialectic.services.planners.common import execute_payload, plan_payload, require_step_fields

NAME = "planPerModel"


def plan_per_model(source_docs, parent_job, recipe_step, auth_token=None):
    """One child for the parent's model, fed every source document."""
    model_id = (parent_job.payload or {}).get("model_id")
    if not model_id:
        raise InvalidJobPayloadError(f"Invalid parent job for {NAME}: model_id is missing.")
    require_step_fields(recipe_step, NAME)
    if not source_docs:
        raise RecipeConfigurationError(
            f"Invalid inputs for {NAME}: At least one source document is required."
        )

    if recipe_step.job_type == JobType.PLAN:
        return [plan_payload(parent_job, recipe_step, NAME)]

    anchor = source_docs[0]
    return [
        execute_payload(
            parent_job,
            recipe_step,
            source_docs,
            anchor=anchor,
            document_relationships={"source_group": anchor.source_group or anchor.id},
        )
    ]
