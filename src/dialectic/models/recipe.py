"""
Recipe tables.

A stage points at an active recipe instance. An instance either reuses the
steps/edges of its template or, once cloned, owns its own copies.
"""
from sqlalchemy import Boolean, Column, Integer, String, JSON
from dialectic.db.database import Base
from dialectic.models.base_model import uuid_fk, uuid_pk
from dialectic.models.mixins import AuditMixin


class DialecticStage(Base, AuditMixin):
    __tablename__ = "dialectic_stages"

    id = uuid_pk()
    slug = Column(String(100), nullable=False, unique=True, index=True)
    display_name = Column(String(255), nullable=True)
    active_recipe_instance_id = Column(String(36), nullable=True)


class StageRecipeInstance(Base, AuditMixin):
    __tablename__ = "dialectic_stage_recipe_instances"

    id = uuid_pk()
    stage_id = uuid_fk("dialectic_stages")
    template_id = Column(String(36), nullable=False)
    is_cloned = Column(Boolean, nullable=False, default=False)


class _RecipeStepColumns:
    step_key = Column(String(255), nullable=False)
    step_slug = Column(String(255), nullable=False)
    step_name = Column(String(255), nullable=True)
    step_description = Column(String(1024), nullable=True)
    job_type = Column(String(20), nullable=False)
    prompt_type = Column(String(50), nullable=True)
    prompt_template_id = Column(String(36), nullable=True)
    output_type = Column(String(100), nullable=True)
    granularity_strategy = Column(String(100), nullable=True)
    execution_order = Column(Integer, nullable=True)
    step_number = Column(Integer, nullable=True)
    parallel_group = Column(Integer, nullable=True)
    branch_key = Column(String(100), nullable=True)
    inputs_required = Column(JSON, nullable=True)
    inputs_relevance = Column(JSON, nullable=True)
    outputs_required = Column(JSON, nullable=True)


class RecipeTemplateStep(Base, AuditMixin, _RecipeStepColumns):
    __tablename__ = "dialectic_recipe_template_steps"

    id = uuid_pk()
    template_id = Column(String(36), nullable=False, index=True)


class RecipeTemplateEdge(Base, AuditMixin):
    __tablename__ = "dialectic_recipe_template_edges"

    id = uuid_pk()
    template_id = Column(String(36), nullable=False, index=True)
    from_step_id = uuid_fk("dialectic_recipe_template_steps")
    to_step_id = uuid_fk("dialectic_recipe_template_steps")


class StageRecipeStep(Base, AuditMixin, _RecipeStepColumns):
    __tablename__ = "dialectic_stage_recipe_steps"

    id = uuid_pk()
    instance_id = uuid_fk("dialectic_stage_recipe_instances")
    template_step_id = Column(String(36), nullable=True)
    config_override = Column(JSON, nullable=True)
    is_skipped = Column(Boolean, nullable=False, default=False)


class StageRecipeEdge(Base, AuditMixin):
    __tablename__ = "dialectic_stage_recipe_edges"

    id = uuid_pk()
    instance_id = uuid_fk("dialectic_stage_recipe_instances")
    from_step_id = uuid_fk("dialectic_stage_recipe_steps")
    to_step_id = uuid_fk("dialectic_stage_recipe_steps")
