"""Collaborators handed to the job runners, replaceable one at a time in tests."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any, Callable

from sqlalchemy.orm import Session

from dialectic.repositories.generation_job_repository import GenerationJobRepository
from dialectic.repositories.recipe_repository import RecipeRepository
from dialectic.services import s3
from dialectic.services.ai_model_client import AiModelClient
from dialectic.services.document_renderer import DocumentRenderer
from dialectic.services.embedding_service import generate_embedding
from dialectic.services.notification_service import NotificationService
from dialectic.services.prompt_assembler import assemble_prompt
from dialectic.services.rag_service import RagService
from dialectic.services.task_isolator import plan_complex_stage
from dialectic.services.token_counter import count_request_tokens


def _max_continuations() -> int:
    return int(os.getenv("DIALECTIC_MAX_CONTINUATIONS", "5"))


@dataclass
class JobDependencies:
    notifications: Any
    jobs_repo: Any = GenerationJobRepository
    recipe_repo: Any = RecipeRepository
    plan_complex_stage: Callable[..., list] = plan_complex_stage
    assemble_prompt: Callable[..., Any] = assemble_prompt
    model_client: Any = None
    rag_service: Any = None
    renderer: Any = None
    embed: Callable[[str], list[float] | None] = generate_embedding
    count_tokens: Callable[..., int] = count_request_tokens
    upload: Callable[..., Any] = s3.upload_bytes
    download: Callable[..., bytes] = s3.download_bytes
    delete: Callable[..., int] = s3.delete_objects
    max_continuations: int = field(default_factory=_max_continuations)


def build_default_dependencies(db: Session) -> JobDependencies:
    notifications = NotificationService(db)
    return JobDependencies(
        notifications=notifications,
        model_client=AiModelClient(),
        rag_service=RagService(),
        renderer=DocumentRenderer(notifications=notifications),
    )
