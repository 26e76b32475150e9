# src/dialectic/repositories/recipe_repository.py

import logging

from opentelemetry import trace
from sqlalchemy.orm import Session

from dialectic.models.recipe import (
    DialecticStage,
    RecipeTemplateEdge,
    RecipeTemplateStep,
    StageRecipeEdge,
    StageRecipeInstance,
    StageRecipeStep,
)
from dialectic.schemas.recipe import RecipeStep, StageRecipe

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class RecipeRepository:

    @staticmethod
    def get_stage(db: Session, stage_slug: str) -> DialecticStage | None:
        with tracer.start_as_current_span("db.get_stage") as span:
            span.set_attribute("stage.slug", stage_slug)
            return (
                db.query(DialecticStage)
                .filter(DialecticStage.slug == stage_slug)
                .first()
            )

    @staticmethod
    def get_instance(db: Session, instance_id: str) -> StageRecipeInstance | None:
        with tracer.start_as_current_span("db.get_recipe_instance") as span:
            span.set_attribute("recipe.instance_id", instance_id)
            return (
                db.query(StageRecipeInstance)
                .filter(StageRecipeInstance.id == instance_id)
                .first()
            )

    @staticmethod
    def load_recipe(db: Session, stage: DialecticStage, instance: StageRecipeInstance) -> StageRecipe:
        """
        Steps and edges for an instance: its own cloned rows when `is_cloned`,
        otherwise the rows of the template it points at.
        """
        with tracer.start_as_current_span("db.load_stage_recipe") as span:
            span.set_attribute("stage.slug", stage.slug)
            span.set_attribute("recipe.instance_id", instance.id)
            span.set_attribute("recipe.is_cloned", bool(instance.is_cloned))

            if instance.is_cloned:
                step_rows = (
                    db.query(StageRecipeStep)
                    .filter(StageRecipeStep.instance_id == instance.id)
                    .all()
                )
                edge_rows = (
                    db.query(StageRecipeEdge)
                    .filter(StageRecipeEdge.instance_id == instance.id)
                    .all()
                )
            else:
                step_rows = (
                    db.query(RecipeTemplateStep)
                    .filter(RecipeTemplateStep.template_id == instance.template_id)
                    .all()
                )
                edge_rows = (
                    db.query(RecipeTemplateEdge)
                    .filter(RecipeTemplateEdge.template_id == instance.template_id)
                    .all()
                )

            recipe = StageRecipe(
                stage_slug=stage.slug,
                instance_id=instance.id,
                template_id=instance.template_id,
                is_cloned=bool(instance.is_cloned),
                steps=[RecipeStep.from_row(row) for row in step_rows],
                edges=[(edge.from_step_id, edge.to_step_id) for edge in edge_rows],
            )
            span.set_attribute("recipe.step_count", len(recipe.steps))

        logger.debug(
            "Loaded recipe for stage=%s instance=%s steps=%d edges=%d cloned=%s",
            stage.slug,
            instance.id,
            len(recipe.steps),
            len(recipe.edges),
            recipe.is_cloned,
        )
        return recipe
