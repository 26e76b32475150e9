"""
Granularity strategy registry.

A planner is a plain function `(source_docs, parent_job, recipe_step, auth_token) -> [payload]`.
"""
from typing import Callable

from .all_to_one import plan_all_to_one
from .pairwise_by_origin import plan_pairwise_by_origin
from .per_model import plan_per_model
from .per_source_document import plan_per_source_document
from .per_source_group import plan_per_source_document_by_lineage, plan_per_source_group

PlannerFn = Callable[..., list]

GRANULARITY_PLANNERS: dict[str, PlannerFn] = {
    "per_source_document": plan_per_source_document,
    "per_model": plan_per_model,
    "all_to_one": plan_all_to_one,
    "per_source_group": plan_per_source_group,
    "per_source_document_by_lineage": plan_per_source_document_by_lineage,
    "pairwise_by_origin": plan_pairwise_by_origin,
}


def get_granularity_planner(strategy: str | None) -> PlannerFn | None:
    if not strategy:
        return None
    return GRANULARITY_PLANNERS.get(strategy)


__all__ = ["GRANULARITY_PLANNERS", "PlannerFn", "get_granularity_planner"]
