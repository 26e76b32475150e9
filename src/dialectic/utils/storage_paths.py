# src/dialectic/utils/storage_paths.py

from __future__ import annotations

from dialectic.utils.filename_utils import slugify_filename


def build_project_root(project_id: str) -> str:
    return f"projects/{project_id}"


def build_stage_root(project_id: str, session_id: str, iteration_number: int, stage_slug: str) -> str:
    project_root = build_project_root(project_id)
    return f"{project_root}/sessions/{session_id}/iteration_{iteration_number}/{slugify_filename(stage_slug)}"


# ---------------------------------------------------------------------------
# Model contributions
# ---------------------------------------------------------------------------

def build_contribution_path(
    project_id: str,
    session_id: str,
    iteration_number: int,
    stage_slug: str,
    *,
    is_continuation: bool = False,
) -> str:
    """
    Directory for model output:
    projects/{project_id}/sessions/{session_id}/iteration_{n}/{stage}/contributions
    Continuation chunks live under `_work` until the document is rendered.
    """
    stage_root = build_stage_root(project_id, session_id, iteration_number, stage_slug)
    return f"{stage_root}/_work" if is_continuation else f"{stage_root}/contributions"


def build_contribution_file_name(
    model_slug: str,
    document_key: str,
    attempt_count: int = 0,
    continuation_count: int = 0,
) -> str:
    base = f"{slugify_filename(model_slug)}_{attempt_count}_{slugify_filename(document_key)}"
    if continuation_count:
        return f"{base}_continuation_{continuation_count}.md"
    return f"{base}.md"


# ---------------------------------------------------------------------------
# Rendered documents (Markdown + HTML)
# ---------------------------------------------------------------------------

def build_rendered_document_path(project_id: str, session_id: str, iteration_number: int, stage_slug: str) -> str:
    stage_root = build_stage_root(project_id, session_id, iteration_number, stage_slug)
    return f"{stage_root}/documents"


def build_rendered_file_name(model_slug: str, document_key: str, ext: str = ".md") -> str:
    return f"{slugify_filename(model_slug)}_{slugify_filename(document_key)}{ext}"
