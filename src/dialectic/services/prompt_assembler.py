# src/dialectic/services/prompt_assembler.py

"""
Builds the prompt construction payload for an EXECUTE job.

The step's prompt template (a Jinja2 SystemPrompt row) is rendered with the
project seed and the job's document context. Input documents listed in
`payload.inputs.document_ids` become resource documents, in that order.
A continuation job replays the chunks written so far as assistant turns.
"""

from __future__ import annotations

import logging
from typing import Callable

from jinja2 import Template, TemplateError
from opentelemetry import trace
from sqlalchemy.orm import Session

from dialectic.errors import InvalidJobPayloadError, RecipeConfigurationError, StorageConfigurationError
from dialectic.models.generation_job import GenerationJob
from dialectic.repositories.contribution_repository import ContributionRepository
from dialectic.repositories.feedback_repository import FeedbackRepository
from dialectic.repositories.project_repository import ProjectRepository
from dialectic.repositories.project_resource_repository import ProjectResourceRepository
from dialectic.repositories.prompt_repository import PromptRepository
from dialectic.schemas.documents import ResourceDocument
from dialectic.schemas.model_call import ChatMessage, PromptConstructionPayload
from dialectic.services import s3
from dialectic.utils.filename_utils import join_storage_key

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

CONTINUATION_PROMPT = (
    "Continue the document exactly where the previous response stopped. "
    "Do not repeat any text that has already been written."
)


def _read_text(download: Callable[..., bytes], row) -> str:
    if not (row.storage_path and row.file_name):
        raise StorageConfigurationError(
            f"Document {row.id} is missing required storage information "
            f"(file_name, storage_bucket, or storage_path)."
        )
    data = download(join_storage_key(row.storage_path, row.file_name), bucket=row.storage_bucket)
    return data.decode("utf-8") if data else ""


def _load_resource_document(db: Session, document_id: str, download: Callable[..., bytes]) -> ResourceDocument | None:
    contribution = ContributionRepository.get_by_id(db, document_id)
    if contribution is not None:
        return ResourceDocument(
            id=contribution.id,
            content=_read_text(download, contribution),
            document_key=contribution.document_key,
            type=contribution.contribution_type,
            stage_slug=contribution.stage,
            storage_path=contribution.storage_path,
            file_name=contribution.file_name,
        )

    resource = ProjectResourceRepository.get_by_id(db, document_id)
    if resource is not None:
        return ResourceDocument(
            id=resource.id,
            content=_read_text(download, resource),
            document_key=resource.document_key,
            type=resource.resource_type,
            stage_slug=resource.stage_slug,
            storage_path=resource.storage_path,
            file_name=resource.file_name,
        )

    feedback = FeedbackRepository.get_by_id(db, document_id)
    if feedback is not None:
        return ResourceDocument(
            id=feedback.id,
            content=_read_text(download, feedback),
            document_key=feedback.document_key or feedback.feedback_type,
            type="feedback",
            stage_slug=feedback.stage_slug,
            storage_path=feedback.storage_path,
            file_name=feedback.file_name,
        )
    return None


def _render_template(template_text: str, context: dict) -> str:
    try:
        return Template(template_text).render(**context)
    except TemplateError as exc:
        raise RecipeConfigurationError(f"Prompt template could not be rendered: {exc}") from exc


def _continuation_history(
    db: Session,
    job: GenerationJob,
    user_prompt: str,
    download: Callable[..., bytes],
) -> list[ChatMessage]:
    payload = job.payload or {}
    target_id = payload.get("target_contribution_id")
    if not target_id:
        return []

    target = ContributionRepository.get_by_id(db, target_id)
    if target is None:
        raise InvalidJobPayloadError(f"Continuation target contribution {target_id} not found.")

    root_id = (target.document_relationships or {}).get(target.stage) or target.id
    root = target if root_id == target.id else ContributionRepository.get_by_id(db, root_id)
    chain = ContributionRepository.list_document_chain(db, root or target)
    written = "".join(_read_text(download, chunk) for chunk in chain)

    return [
        ChatMessage(role="user", content=user_prompt),
        ChatMessage(role="assistant", content=written),
    ]


def assemble_prompt(
    db: Session,
    job: GenerationJob,
    download: Callable[..., bytes] = None,
) -> PromptConstructionPayload:
    download = download or s3.download_bytes
    payload = job.payload or {}

    with tracer.start_as_current_span("prompt.assemble") as span:
        span.set_attribute("job.id", str(job.id))

        template_id = payload.get("prompt_template_id")
        if not template_id:
            raise InvalidJobPayloadError("EXECUTE job payload is missing prompt_template_id")
        template = PromptRepository.get_template(db, template_id)
        if template is None:
            raise RecipeConfigurationError(f"Prompt template {template_id} not found or inactive.")

        project = ProjectRepository.get_by_id(db, payload.get("projectId"))
        context = {
            "project_name": project.project_name if project else "",
            "initial_user_prompt": project.initial_user_prompt if project else "",
            "stage_slug": payload.get("stageSlug"),
            "iteration_number": payload.get("iterationNumber"),
            "document_key": payload.get("document_key"),
            "output_type": payload.get("output_type"),
            "context_for_documents": payload.get("context_for_documents") or [],
        }
        user_prompt = _render_template(template.prompt_text, context)

        documents: list[ResourceDocument] = []
        for document_id in (payload.get("inputs") or {}).get("document_ids") or []:
            document = _load_resource_document(db, document_id, download)
            if document is None:
                logger.warning("Input document %s for job %s no longer exists; skipping", document_id, job.id)
                continue
            documents.append(document)

        history = _continuation_history(db, job, user_prompt, download)
        span.set_attribute("prompt.document_count", len(documents))
        span.set_attribute("prompt.is_continuation", bool(history))

    return PromptConstructionPayload(
        system_instruction=payload.get("system_instruction"),
        conversation_history=history,
        resource_documents=documents,
        current_user_prompt=CONTINUATION_PROMPT if history else user_prompt,
        source_contribution_id=payload.get("target_contribution_id"),
    )
