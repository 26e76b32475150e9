import logging

from dialectic.models.generation_job import JobType
from dialectic.services.planners.common import (
    execute_payload,
    group_by_source_group,
    plan_payload,
    require_step_fields,
)

logger = logging.getLogger(__name__)


def plan_per_source_group(source_docs, parent_job, recipe_step, auth_token=None):
    """
    One child per `document_relationships.source_group`. Documents that do
    not belong to a group are not planned.
    """
    name = "planPerSourceGroup"
    require_step_fields(recipe_step, name)

    if recipe_step.job_type == JobType.PLAN:
        return [plan_payload(parent_job, recipe_step, name)]

    groups = group_by_source_group(source_docs, fallback_to_id=False)
    skipped = len(source_docs) - sum(len(g) for g in groups.values())
    if skipped:
        logger.warning("%s: skipped %d document(s) without a source_group", name, skipped)

    return [
        execute_payload(
            parent_job,
            recipe_step,
            documents,
            anchor=documents[0],
            document_relationships={"source_group": group_id},
        )
        for group_id, documents in groups.items()
    ]


def plan_per_source_document_by_lineage(source_docs, parent_job, recipe_step, auth_token=None):
    """
    One child per lineage. A document without a source_group starts its own
    lineage keyed by its id.
    """
    name = "planPerSourceDocumentByLineage"
    require_step_fields(recipe_step, name)

    if recipe_step.job_type == JobType.PLAN:
        return [plan_payload(parent_job, recipe_step, name)]

    groups = group_by_source_group(source_docs, fallback_to_id=True)
    return [
        execute_payload(
            parent_job,
            recipe_step,
            documents,
            anchor=documents[0],
            document_relationships={"source_group": lineage_id},
        )
        for lineage_id, documents in groups.items()
    ]
