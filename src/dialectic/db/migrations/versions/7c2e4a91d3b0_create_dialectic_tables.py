"""create dialectic tables

Revision ID: 7c2e4a91d3b0
Revises:
Create Date: 2025-12-02 10:14:41.209311

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "7c2e4a91d3b0"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _id():
    return sa.Column("id", sa.String(36), primary_key=True, nullable=False)


def _fk(name, table, nullable=False, ondelete="CASCADE"):
    return sa.Column(name, sa.String(36), sa.ForeignKey(f"{table}.id", ondelete=ondelete), nullable=nullable)


def _audit():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    ]


def _storage():
    return [
        sa.Column("storage_bucket", sa.String(255), nullable=True),
        sa.Column("storage_path", sa.String(1024), nullable=True),
        sa.Column("file_name", sa.String(512), nullable=True),
        sa.Column("mime_type", sa.String(100), nullable=True),
        sa.Column("size_bytes", sa.Integer(), nullable=True),
    ]


def _step_columns():
    return [
        sa.Column("step_key", sa.String(255), nullable=False),
        sa.Column("step_slug", sa.String(255), nullable=False),
        sa.Column("step_name", sa.String(255), nullable=True),
        sa.Column("step_description", sa.String(1024), nullable=True),
        sa.Column("job_type", sa.String(20), nullable=False),
        sa.Column("prompt_type", sa.String(50), nullable=True),
        sa.Column("prompt_template_id", sa.String(36), nullable=True),
        sa.Column("output_type", sa.String(100), nullable=True),
        sa.Column("granularity_strategy", sa.String(100), nullable=True),
        sa.Column("execution_order", sa.Integer(), nullable=True),
        sa.Column("step_number", sa.Integer(), nullable=True),
        sa.Column("parallel_group", sa.Integer(), nullable=True),
        sa.Column("branch_key", sa.String(100), nullable=True),
        sa.Column("inputs_required", sa.JSON(), nullable=True),
        sa.Column("inputs_relevance", sa.JSON(), nullable=True),
        sa.Column("outputs_required", sa.JSON(), nullable=True),
    ]


def upgrade() -> None:
    op.create_table(
        "dialectic_projects",
        _id(),
        sa.Column("user_id", sa.String(255), nullable=False, index=True),
        sa.Column("project_name", sa.String(255), nullable=False),
        sa.Column("initial_user_prompt", sa.Text(), nullable=True),
        *_audit(),
    )

    op.create_table(
        "dialectic_sessions",
        _id(),
        _fk("project_id", "dialectic_projects"),
        sa.Column("current_stage_slug", sa.String(100), nullable=True),
        sa.Column("iteration_count", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("status", sa.String(50), nullable=True),
        sa.Column("selected_model_ids", sa.JSON(), nullable=True),
        *_audit(),
    )
    op.create_index("ix_dialectic_sessions_project_id", "dialectic_sessions", ["project_id"])

    op.create_table(
        "generation_jobs",
        _id(),
        _fk("parent_job_id", "generation_jobs", nullable=True),
        _fk("prerequisite_job_id", "generation_jobs", nullable=True, ondelete="SET NULL"),
        sa.Column("target_contribution_id", sa.String(36), nullable=True),
        sa.Column("session_id", sa.String(36), nullable=False, index=True),
        sa.Column("user_id", sa.String(255), nullable=False),
        sa.Column("stage_slug", sa.String(100), nullable=False),
        sa.Column("iteration_number", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("job_type", sa.String(20), nullable=False),
        sa.Column("status", sa.String(40), nullable=False, server_default="pending", index=True),
        sa.Column("attempt_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("max_retries", sa.Integer(), nullable=False, server_default="3"),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("results", sa.JSON(), nullable=True),
        sa.Column("error_details", sa.JSON(), nullable=True),
        sa.Column("is_test_job", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_audit(),
    )
    op.create_index("ix_generation_jobs_parent_job_id", "generation_jobs", ["parent_job_id"])
    op.create_index("ix_generation_jobs_prerequisite_job_id", "generation_jobs", ["prerequisite_job_id"])

    op.create_table(
        "dialectic_stages",
        _id(),
        sa.Column("slug", sa.String(100), nullable=False, unique=True, index=True),
        sa.Column("display_name", sa.String(255), nullable=True),
        sa.Column("active_recipe_instance_id", sa.String(36), nullable=True),
        *_audit(),
    )

    op.create_table(
        "dialectic_stage_recipe_instances",
        _id(),
        _fk("stage_id", "dialectic_stages"),
        sa.Column("template_id", sa.String(36), nullable=False),
        sa.Column("is_cloned", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_audit(),
    )
    op.create_index("ix_dialectic_stage_recipe_instances_stage_id", "dialectic_stage_recipe_instances", ["stage_id"])

    op.create_table(
        "dialectic_recipe_template_steps",
        _id(),
        sa.Column("template_id", sa.String(36), nullable=False, index=True),
        *_step_columns(),
        *_audit(),
    )

    op.create_table(
        "dialectic_recipe_template_edges",
        _id(),
        sa.Column("template_id", sa.String(36), nullable=False, index=True),
        _fk("from_step_id", "dialectic_recipe_template_steps"),
        _fk("to_step_id", "dialectic_recipe_template_steps"),
        *_audit(),
    )

    op.create_table(
        "dialectic_stage_recipe_steps",
        _id(),
        _fk("instance_id", "dialectic_stage_recipe_instances"),
        sa.Column("template_step_id", sa.String(36), nullable=True),
        *_step_columns(),
        sa.Column("config_override", sa.JSON(), nullable=True),
        sa.Column("is_skipped", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_audit(),
    )
    op.create_index("ix_dialectic_stage_recipe_steps_instance_id", "dialectic_stage_recipe_steps", ["instance_id"])

    op.create_table(
        "dialectic_stage_recipe_edges",
        _id(),
        _fk("instance_id", "dialectic_stage_recipe_instances"),
        _fk("from_step_id", "dialectic_stage_recipe_steps"),
        _fk("to_step_id", "dialectic_stage_recipe_steps"),
        *_audit(),
    )

    op.create_table(
        "dialectic_contributions",
        _id(),
        _fk("session_id", "dialectic_sessions"),
        sa.Column("stage", sa.String(100), nullable=False, index=True),
        sa.Column("iteration_number", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("user_id", sa.String(255), nullable=True),
        sa.Column("model_id", sa.String(36), nullable=True),
        sa.Column("model_name", sa.String(255), nullable=True),
        sa.Column("contribution_type", sa.String(100), nullable=True),
        sa.Column("document_key", sa.String(100), nullable=True),
        *_storage(),
        sa.Column("document_relationships", sa.JSON(), nullable=True),
        sa.Column("target_contribution_id", sa.String(36), nullable=True),
        sa.Column("continuation_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_latest_edit", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("tokens_used_input", sa.Integer(), nullable=True),
        sa.Column("tokens_used_output", sa.Integer(), nullable=True),
        sa.Column("processing_time_ms", sa.Integer(), nullable=True),
        *_audit(),
    )
    op.create_index("ix_dialectic_contributions_session_id", "dialectic_contributions", ["session_id"])

    op.create_table(
        "dialectic_project_resources",
        _id(),
        _fk("project_id", "dialectic_projects"),
        sa.Column("session_id", sa.String(36), nullable=True, index=True),
        sa.Column("user_id", sa.String(255), nullable=True),
        sa.Column("stage_slug", sa.String(100), nullable=True),
        sa.Column("iteration_number", sa.Integer(), nullable=True),
        sa.Column("resource_type", sa.String(100), nullable=False),
        sa.Column("document_key", sa.String(100), nullable=True),
        sa.Column("source_contribution_id", sa.String(36), nullable=True),
        sa.Column("resource_description", sa.JSON(), nullable=True),
        *_storage(),
        *_audit(),
    )
    op.create_index("ix_dialectic_project_resources_project_id", "dialectic_project_resources", ["project_id"])

    op.create_table(
        "dialectic_feedback",
        _id(),
        _fk("project_id", "dialectic_projects"),
        sa.Column("session_id", sa.String(36), nullable=False, index=True),
        sa.Column("user_id", sa.String(255), nullable=True),
        sa.Column("stage_slug", sa.String(100), nullable=False),
        sa.Column("iteration_number", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("feedback_type", sa.String(100), nullable=True),
        sa.Column("document_key", sa.String(100), nullable=True),
        sa.Column("resource_description", sa.JSON(), nullable=True),
        *_storage(),
        *_audit(),
    )
    op.create_index("ix_dialectic_feedback_project_id", "dialectic_feedback", ["project_id"])

    op.create_table(
        "notifications",
        _id(),
        sa.Column("user_id", sa.String(255), nullable=False, index=True),
        sa.Column("type", sa.String(100), nullable=False),
        sa.Column("data", sa.JSON(), nullable=False),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_audit(),
    )

    op.create_table(
        "system_prompts",
        _id(),
        sa.Column("name", sa.String(255), nullable=False, unique=True),
        sa.Column("prompt_text", sa.Text(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_audit(),
    )

    op.create_table(
        "ai_providers",
        _id(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("api_identifier", sa.String(255), nullable=False),
        sa.Column("provider", sa.String(50), nullable=False, server_default="anthropic"),
        sa.Column("config", sa.JSON(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_audit(),
    )


def downgrade() -> None:
    op.drop_table("ai_providers")
    op.drop_table("system_prompts")
    op.drop_table("notifications")
    op.drop_table("dialectic_feedback")
    op.drop_table("dialectic_project_resources")
    op.drop_table("dialectic_contributions")
    op.drop_table("dialectic_stage_recipe_edges")
    op.drop_table("dialectic_stage_recipe_steps")
    op.drop_table("dialectic_recipe_template_edges")
    op.drop_table("dialectic_recipe_template_steps")
    op.drop_table("dialectic_stage_recipe_instances")
    op.drop_table("dialectic_stages")
    op.drop_table("generation_jobs")
    op.drop_table("dialectic_sessions")
    op.drop_table("dialectic_projects")
