# src/dialectic/services/model_call_service.py

"""
EXECUTE job runner: fit the request into the model's context window, call
the model, persist the output as a contribution and schedule follow-ups.

Compression replaces a document's or history message's content with a
summary in place. Both lists keep their order, roles and identities; only
the content of compressed entries differs from what was assembled.
"""

from __future__ import annotations

import logging
import os
from typing import Any

from opentelemetry import trace
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from dialectic.errors import ContextWindowError, DocumentIdentityError, RagServiceError
from dialectic.metrics import compression_passes_total, context_window_failures_total
from dialectic.models.base_model import new_id
from dialectic.models.generation_job import GenerationJob, JobStatus, JobType
from dialectic.repositories.contribution_repository import ContributionRepository
from dialectic.schemas.documents import ResourceDocument
from dialectic.schemas.model_call import ChatMessage, ChatRequest, ModelResponse, PromptConstructionPayload, ProviderConfig
from dialectic.schemas.recipe import RelevanceRule
from dialectic.services.compression import get_sorted_compression_candidates
from dialectic.services.document_identity import enrich_document_identity
from dialectic.services.job_dependencies import JobDependencies
from dialectic.services.notification_service import build_notification_payload
from dialectic.utils.file_types import is_document_centric
from dialectic.utils.filename_utils import join_storage_key
from dialectic.utils.storage_paths import build_contribution_file_name, build_contribution_path

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


def build_chat_request(prompt: PromptConstructionPayload, provider: ProviderConfig) -> ChatRequest:
    return ChatRequest(
        model_id=provider.model_id,
        api_identifier=provider.api_identifier,
        system_instruction=prompt.system_instruction,
        conversation_history=prompt.conversation_history,
        resource_documents=prompt.resource_documents,
        message=prompt.current_user_prompt,
        max_tokens=provider.max_output_tokens,
    )


def _relevance_rules(job: GenerationJob) -> list[RelevanceRule]:
    return [RelevanceRule.model_validate(rule) for rule in (job.payload or {}).get("inputs_relevance") or []]


def input_token_allowance(provider: ProviderConfig) -> int:
    """Tokens left for the request once the output reservation is set aside."""
    return provider.context_window_tokens - provider.max_output_tokens


def _compress_one(
    job: GenerationJob,
    document: ResourceDocument,
    provider: ProviderConfig,
    rules: list[RelevanceRule],
    deps: JobDependencies,
) -> str:
    payload = job.payload or {}
    result = deps.rag_service.get_context_for_model(
        [document],
        provider,
        payload.get("sessionId") or job.session_id,
        payload.get("stageSlug") or job.stage_slug,
        rules,
    )
    if result.error:
        raise RagServiceError(f"Failed to compress document {document.id}: {result.error}")
    return result.context


def compress_to_fit(
    db: Session,
    job: GenerationJob,
    request: ChatRequest,
    provider: ProviderConfig,
    deps: JobDependencies,
) -> ChatRequest:
    """
    Summarize resource documents and middle history messages one at a time,
    lowest effective score first, until the request fits the window minus
    `provider.max_output_tokens`. The model is never called with a request
    over that allowance.
    """
    allowed = input_token_allowance(provider)
    tokens = deps.count_tokens(request)
    if tokens <= allowed:
        return request

    rules = _relevance_rules(job)

    with tracer.start_as_current_span("compression.compress_to_fit") as span:
        span.set_attribute("job.id", str(job.id))
        span.set_attribute("compression.initial_tokens", tokens)
        span.set_attribute("compression.allowed_tokens", allowed)

        documents: list[ResourceDocument] = enrich_document_identity(db, list(request.resource_documents))
        history: list[ChatMessage] = list(request.conversation_history)
        compressed: set[str] = set()

        while tokens > allowed:
            candidates = get_sorted_compression_candidates(
                documents,
                request.message,
                rules,
                deps.embed,
                exclude_ids=compressed,
                history=history,
            )
            if not candidates:
                context_window_failures_total.inc()
                raise ContextWindowError(
                    f"Compression exhausted all candidates; request is {tokens} tokens "
                    f"against an input allowance of {allowed} tokens for model {provider.api_identifier}."
                )

            target = candidates[0]
            if target.source_type == "history":
                message = history[target.original_index]
                summary = _compress_one(
                    job,
                    ResourceDocument(id=target.id, content=message.content, type="history"),
                    provider,
                    rules,
                    deps,
                )
                history[target.original_index] = message.model_copy(update={"content": summary})
            else:
                position = next(i for i, d in enumerate(documents) if d.id == target.id)
                document = documents[position]
                if not document.has_identity():
                    raise DocumentIdentityError(
                        f"Document {document.id} has no document_key/type/stage_slug and cannot be compressed."
                    )
                documents[position] = document.model_copy(
                    update={"content": _compress_one(job, document, provider, rules, deps)}
                )
            compressed.add(target.id)
            compression_passes_total.inc()

            request = request.model_copy(
                update={"resource_documents": list(documents), "conversation_history": list(history)}
            )
            previous, tokens = tokens, deps.count_tokens(request)
            logger.info(
                "Compressed %s %s (score=%.4f) for job %s: %d -> %d tokens",
                target.source_type,
                target.id,
                target.effective_score,
                job.id,
                previous,
                tokens,
            )

        span.set_attribute("compression.final_tokens", tokens)
        span.set_attribute("compression.items_compressed", len(compressed))

    return request


def _root_contribution_id(db: Session, job: GenerationJob) -> str | None:
    """Id of the document's first chunk when this job continues an earlier one."""
    target_id = (job.payload or {}).get("target_contribution_id")
    if not target_id:
        return None
    target = ContributionRepository.get_by_id(db, target_id)
    if target is None:
        return target_id
    return (target.document_relationships or {}).get(target.stage) or target.id


def save_contribution(
    db: Session,
    job: GenerationJob,
    response: ModelResponse,
    provider: ProviderConfig,
    deps: JobDependencies,
):
    payload = job.payload or {}
    stage_slug = payload.get("stageSlug") or job.stage_slug
    iteration_number = payload.get("iterationNumber") or job.iteration_number
    document_key = payload.get("document_key") or payload.get("output_type")
    continuation_count = int(payload.get("continuation_count") or 0)
    model_slug = payload.get("model_slug") or provider.name or provider.api_identifier

    root_id = _root_contribution_id(db, job)
    contribution_id = new_id()
    relationships = dict(payload.get("document_relationships") or {})
    relationships[stage_slug] = root_id or contribution_id

    storage_path = build_contribution_path(
        payload.get("projectId"),
        payload.get("sessionId") or job.session_id,
        iteration_number,
        stage_slug,
        is_continuation=root_id is not None,
    )
    file_name = build_contribution_file_name(model_slug, document_key, job.attempt_count or 0, continuation_count)
    bucket = os.getenv("AWS_S3_BUCKET")
    body = response.content.encode("utf-8")
    key = join_storage_key(storage_path, file_name)
    deps.upload(key, body, content_type=response.content_type, bucket=bucket)

    try:
        return ContributionRepository.create(
            db,
            id=contribution_id,
            session_id=payload.get("sessionId") or job.session_id,
            stage=stage_slug,
            iteration_number=iteration_number,
            user_id=job.user_id,
            model_id=provider.model_id,
            model_name=provider.name,
            contribution_type=payload.get("output_type"),
            document_key=document_key,
            storage_bucket=bucket,
            storage_path=storage_path,
            file_name=file_name,
            mime_type=response.content_type,
            size_bytes=len(body),
            document_relationships=relationships,
            target_contribution_id=payload.get("target_contribution_id"),
            continuation_count=continuation_count,
            tokens_used_input=response.input_tokens,
            tokens_used_output=response.output_tokens,
            processing_time_ms=response.processing_time_ms,
        )
    except SQLAlchemyError:
        db.rollback()
        logger.error("Could not record contribution %s; removing uploaded object %s", contribution_id, key)
        deps.delete([key], bucket=bucket)
        raise


def _sibling_job(job: GenerationJob, job_type: str, payload: dict[str, Any]) -> GenerationJob:
    return GenerationJob(
        parent_job_id=job.parent_job_id,
        session_id=job.session_id,
        user_id=job.user_id,
        stage_slug=job.stage_slug,
        iteration_number=job.iteration_number,
        job_type=job_type,
        status=JobStatus.PENDING,
        payload=payload,
        max_retries=job.max_retries,
        is_test_job=job.is_test_job,
    )


def continuation_job(job: GenerationJob, contribution) -> GenerationJob:
    payload = dict(job.payload or {})
    payload["continuation_count"] = int(payload.get("continuation_count") or 0) + 1
    payload["target_contribution_id"] = contribution.id
    return _sibling_job(job, JobType.EXECUTE, payload)


def render_job(job: GenerationJob, contribution) -> GenerationJob:
    payload = job.payload or {}
    render_payload = {
        "projectId": payload.get("projectId"),
        "sessionId": payload.get("sessionId"),
        "stageSlug": payload.get("stageSlug"),
        "iterationNumber": payload.get("iterationNumber"),
        "user_jwt": payload.get("user_jwt"),
        "model_id": payload.get("model_id"),
        "documentIdentity": (contribution.document_relationships or {}).get(contribution.stage) or contribution.id,
        "documentKey": contribution.document_key,
        "sourceContributionId": contribution.id,
        "planner_metadata": payload.get("planner_metadata"),
    }
    return _sibling_job(job, JobType.RENDER, render_payload)


def _should_continue(job: GenerationJob, response: ModelResponse, max_continuations: int) -> bool:
    payload = job.payload or {}
    if response.finish_reason != "length" or not payload.get("continueUntilComplete"):
        return False
    count = int(payload.get("continuation_count") or 0)
    if count >= max_continuations:
        logger.warning(
            "Job %s reached the continuation limit (%d); keeping truncated output",
            job.id,
            max_continuations,
        )
        return False
    return True


def execute_model_call_and_save(
    db: Session,
    job: GenerationJob,
    prompt: PromptConstructionPayload,
    provider: ProviderConfig,
    deps: JobDependencies,
    project_owner_user_id: str | None,
) -> dict[str, Any]:
    payload = job.payload or {}
    output_type = payload.get("output_type")
    step_key = (payload.get("planner_metadata") or {}).get("recipe_step_key")

    with tracer.start_as_current_span("execute.model_call_and_save") as span:
        span.set_attribute("job.id", str(job.id))
        span.set_attribute("model.id", provider.model_id)
        span.set_attribute("output.type", output_type or "")

        request = compress_to_fit(db, job, build_chat_request(prompt, provider), provider, deps)
        response = deps.model_client.call_unified_ai_model(request)
        contribution = save_contribution(db, job, response, provider, deps)

        if is_document_centric(output_type) and project_owner_user_id:
            event = build_notification_payload(
                "execute_chunk_completed",
                job,
                step_key,
                document_key=contribution.document_key,
                modelId=provider.model_id,
            )
            deps.notifications.send_document_centric_notification(event, project_owner_user_id)

        will_continue = _should_continue(job, response, deps.max_continuations)
        follow_ups = []
        if will_continue:
            follow_ups.append(continuation_job(job, contribution))
        if is_document_centric(output_type):
            follow_ups.append(render_job(job, contribution))
        if follow_ups:
            deps.jobs_repo.insert_many(db, follow_ups)

        results = {
            "contribution_id": contribution.id,
            "document_key": contribution.document_key,
            "modelId": provider.model_id,
            "finish_reason": response.finish_reason,
            "will_continue": will_continue,
            "tokens": {"input": response.input_tokens, "output": response.output_tokens},
        }
        deps.jobs_repo.update(db, job.id, status=JobStatus.COMPLETED, results=results)
        span.set_attribute("execute.will_continue", will_continue)

    logger.info(
        "EXECUTE job %s saved contribution %s (finish_reason=%s, continue=%s)",
        job.id,
        contribution.id,
        response.finish_reason,
        will_continue,
    )
    return results
