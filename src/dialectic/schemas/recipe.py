from __future__ import annotations

from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, field_validator


class InputRule(BaseModel):
    """One entry of a step's `inputs_required`."""
    model_config = ConfigDict(extra="allow")

    type: str
    slug: str | None = None
    document_key: str | None = None
    stage_slug: str | None = None
    required: bool | None = None

    @property
    def target_stage(self) -> str | None:
        return self.stage_slug or self.slug

    def is_required(self) -> bool:
        # Feedback is opt-in; everything else listed on a step must exist.
        if self.required is not None:
            return self.required
        return self.type != "feedback"


class RelevanceRule(BaseModel):
    model_config = ConfigDict(extra="allow")

    document_key: str
    relevance: float
    type: str | None = None
    slug: str | None = None
    stage_slug: str | None = None

    @property
    def target_stage(self) -> str | None:
        return self.stage_slug or self.slug


class RecipeStep(BaseModel):
    """
    A recipe DAG node, normalized from either a template step or a cloned
    instance step. Unknown keys are kept in `model_extra` so deprecated
    fields can be detected and rejected instead of silently dropped.
    """
    model_config = ConfigDict(extra="allow")

    DEPRECATED_FIELDS: ClassVar[tuple[str, ...]] = ("step", "prompt_template_name")

    id: str
    step_key: str
    step_slug: str | None = None
    step_name: str | None = None
    job_type: str = "EXECUTE"
    prompt_type: str | None = None
    prompt_template_id: str | None = None
    output_type: str | None = None
    granularity_strategy: str | None = None
    execution_order: int | None = None
    step_number: int | None = None
    parallel_group: int | None = None
    branch_key: str | None = None
    inputs_required: list[InputRule] = []
    inputs_relevance: list[RelevanceRule] = []
    outputs_required: dict[str, Any] | None = None
    config_override: dict[str, Any] | None = None
    is_skipped: bool = False

    @field_validator("inputs_required", "inputs_relevance", mode="before")
    @classmethod
    def _none_to_empty(cls, value):
        return [] if value is None else value

    @field_validator("is_skipped", mode="before")
    @classmethod
    def _none_to_false(cls, value):
        return bool(value)

    def deprecated_fields(self) -> list[str]:
        extra = self.model_extra or {}
        return [name for name in self.DEPRECATED_FIELDS if name in extra]

    def sort_key(self) -> tuple:
        order = self.execution_order if self.execution_order is not None else self.step_number
        return (order if order is not None else 0, self.step_key)

    @classmethod
    def from_row(cls, row) -> "RecipeStep":
        data = {
            column.name: getattr(row, column.name)
            for column in row.__table__.columns
            if column.name not in ("created_at", "updated_at")
        }
        return cls.model_validate(data)


class StageRecipe(BaseModel):
    """Steps plus `(from_step_id, to_step_id)` edges for one stage."""

    stage_slug: str
    instance_id: str | None = None
    template_id: str | None = None
    is_cloned: bool = False
    steps: list[RecipeStep] = []
    edges: list[tuple[str, str]] = []

    def predecessors(self, step_id: str) -> list[str]:
        return [source for source, target in self.edges if target == step_id]

    def ordered_steps(self) -> list[RecipeStep]:
        """Topological order, ties broken by execution order then step key."""
        step_ids = {step.id for step in self.steps}
        remaining = {step.id: step for step in self.steps}
        ordered: list[RecipeStep] = []
        placed: set[str] = set()
        while remaining:
            ready = [
                step for step in remaining.values()
                if all(p in placed or p not in step_ids for p in self.predecessors(step.id))
            ]
            if not ready:
                # Cycle in the edges; fall back to declared order for what is left.
                ready = list(remaining.values())
            ready.sort(key=RecipeStep.sort_key)
            step = ready[0]
            ordered.append(step)
            placed.add(step.id)
            del remaining[step.id]
        return ordered
