"""
Pairs each anchor document from the first input stage with the documents
from the second input stage that were written about it, one child per
(anchor, paired model).
"""
import logging

from dialectic.errors import RecipeConfigurationError
from dialectic.models.generation_job import JobType
from dialectic.services.planners.common import execute_payload, plan_payload, require_step_fields

logger = logging.getLogger(__name__)

NAME = "planPairwiseByOrigin"


def _ordered_document_stages(recipe_step) -> list[str]:
    stages: list[str] = []
    for rule in recipe_step.inputs_required:
        stage = rule.target_stage
        if rule.type == "document" and stage and stage not in stages:
            stages.append(stage)
    return stages


def _critiques(paired_doc, anchor_doc, anchor_stage: str) -> bool:
    relationships = paired_doc.document_relationships or {}
    return anchor_doc.id in (relationships.get(anchor_stage), relationships.get("source_group"))


def plan_pairwise_by_origin(source_docs, parent_job, recipe_step, auth_token=None):
    require_step_fields(recipe_step, NAME)

    stages = _ordered_document_stages(recipe_step)
    if len(stages) < 2:
        raise RecipeConfigurationError(
            f"{NAME} requires inputs_required with at least two different stage slugs "
            f"for document inputs, but found: {len(stages)}"
        )
    anchor_stage, paired_stage = stages[0], stages[1]

    required_paired_keys = {
        rule.document_key
        for rule in recipe_step.inputs_required
        if rule.type == "document" and rule.target_stage == paired_stage and rule.document_key
    }

    anchors = [d for d in source_docs if d.stage_slug == anchor_stage]
    paired = [d for d in source_docs if d.stage_slug == paired_stage]
    if not anchors:
        raise RecipeConfigurationError(
            f"{NAME} requires anchor documents from stage '{anchor_stage}', but none were found"
        )
    if not paired:
        raise RecipeConfigurationError(
            f"{NAME} requires paired documents from stage '{paired_stage}', but none were found"
        )

    pairings: dict[tuple[str, str], tuple] = {}
    for anchor in anchors:
        for candidate in paired:
            if not _critiques(candidate, anchor, anchor_stage):
                continue
            if required_paired_keys and candidate.document_key not in required_paired_keys:
                continue
            model_slug = candidate.model_name or candidate.model_id
            if not model_slug:
                logger.warning("%s: paired document %s has no model; skipping", NAME, candidate.id)
                continue
            _, docs = pairings.setdefault((anchor.id, model_slug), (anchor, []))
            docs.append(candidate)

    if not pairings:
        raise RecipeConfigurationError(
            f"{NAME} could not create any pairs: no documents from stage '{paired_stage}' "
            f"reference any document from stage '{anchor_stage}'. Found {len(anchors)} anchor "
            f"document(s) and {len(paired)} paired document(s)."
        )

    if recipe_step.job_type == JobType.PLAN:
        return [plan_payload(parent_job, recipe_step, NAME)]

    payloads = []
    for (anchor_id, model_slug), (anchor, docs) in pairings.items():
        relationships = {
            "source_group": anchor_id,
            anchor_stage: anchor_id,
            paired_stage: docs[0].id,
        }
        payloads.append(
            execute_payload(
                parent_job,
                recipe_step,
                [anchor] + docs,
                anchor=anchor,
                paired_model_slug=model_slug,
                document_relationships=relationships,
            )
        )
    return payloads
