from dialectic.errors import RecipeConfigurationError
from dialectic.models.generation_job import JobType
from dialectic.services.planners.common import execute_payload, plan_payload, require_step_fields

NAME = "planAllToOne"


def plan_all_to_one(source_docs, parent_job, recipe_step, auth_token=None):
    """Collapse every source document into a single child."""
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
            document_relationships={"source_group": anchor.id},
        )
    ]
