# src/dialectic/services/rag_service.py

"""
Context service used by compression: condenses source documents into a
summary that keeps what the current stage needs.
"""

from __future__ import annotations

import logging
import os

import anthropic
from opentelemetry import trace

from dialectic.metrics import rag_summaries_total
from dialectic.schemas.documents import ResourceDocument
from dialectic.schemas.model_call import ProviderConfig, RagContextResult
from dialectic.schemas.recipe import RelevanceRule

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

SUMMARY_MODEL = os.getenv("DIALECTIC_SUMMARY_MODEL", "claude-sonnet-4-20250514")


def _build_summary_prompt(documents: list[ResourceDocument], stage_slug: str | None, target_tokens: int) -> str:
    parts = [
        "Condense the following source material so it can stand in for the original "
        "in a later generation step.",
        f"Keep every decision, requirement, figure and named entity. Aim for at most {target_tokens} tokens.",
    ]
    if stage_slug:
        parts.append(f"The material will be used in the '{stage_slug}' stage.")
    for document in documents:
        parts.append(f"--- {document.document_key or document.id} ---\n{document.content}")
    return "\n\n".join(parts)


class RagService:

    def __init__(self, api_key: str | None = None, client: anthropic.Anthropic | None = None):
        self._api_key = api_key or os.getenv("ANTHROPIC_API_KEY")
        self._client = client

    def get_context_for_model(
        self,
        source_documents: list[ResourceDocument],
        model_config: ProviderConfig,
        session_id: str,
        stage_slug: str | None = None,
        inputs_relevance: list[RelevanceRule] | None = None,
    ) -> RagContextResult:
        """
        Returns the condensed context, or a result carrying `error` when the
        summary could not be produced.
        """
        with tracer.start_as_current_span("rag.get_context_for_model") as span:
            span.set_attribute("session.id", session_id)
            span.set_attribute("rag.document_count", len(source_documents))
            span.set_attribute("rag.has_relevance_rules", bool(inputs_relevance))

            if not source_documents:
                return RagContextResult(context="")

            if self._client is None:
                if not self._api_key:
                    rag_summaries_total.labels(outcome="error").inc()
                    return RagContextResult(error="ANTHROPIC_API_KEY is not set in environment variables")
                self._client = anthropic.Anthropic(api_key=self._api_key)

            target_tokens = max(256, model_config.context_window_tokens // 10)
            try:
                message = self._client.messages.create(
                    model=SUMMARY_MODEL,
                    max_tokens=target_tokens,
                    messages=[
                        {"role": "user", "content": _build_summary_prompt(source_documents, stage_slug, target_tokens)}
                    ],
                )
            except anthropic.APIError as exc:
                logger.error("Summary generation failed for session=%s: %s", session_id, exc)
                rag_summaries_total.labels(outcome="error").inc()
                span.set_attribute("rag.failed", True)
                return RagContextResult(error=str(exc))

            summary = message.content[0].text if message.content else ""
            usage = getattr(message, "usage", None)
            span.set_attribute("rag.summary_length", len(summary))

        rag_summaries_total.labels(outcome="success").inc()
        logger.info(
            "Condensed %d document(s) for session=%s into %d characters",
            len(source_documents),
            session_id,
            len(summary),
        )
        return RagContextResult(
            context=summary,
            tokens_used_for_indexing=getattr(usage, "input_tokens", 0) or 0,
        )
