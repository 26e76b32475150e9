# src/dialectic/services/ai_model_client.py

"""
Unified model invocation.

Sends a ChatRequest to Anthropic and normalizes the reply into a
ModelResponse. `finish_reason` is "length" when the model stopped at its
output limit, which is what triggers continuation.
"""

from __future__ import annotations

import logging
import os
import time

import anthropic
from opentelemetry import trace

from dialectic.errors import ModelCallError
from dialectic.schemas.model_call import ChatRequest, ModelResponse

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

_STOP_REASONS = {
    "max_tokens": "length",
    "end_turn": "stop",
    "stop_sequence": "stop",
}


def format_resource_documents(request: ChatRequest) -> str:
    """Documents are sent in list order, each under its identity header."""
    sections = []
    for document in request.resource_documents:
        label = " / ".join(
            part for part in (document.stage_slug, document.document_key, document.type) if part
        )
        sections.append(f"<document id=\"{document.id}\" label=\"{label}\">\n{document.content}\n</document>")
    return "\n\n".join(sections)


def build_messages(request: ChatRequest) -> list[dict]:
    messages = [{"role": m.role, "content": m.content} for m in request.conversation_history if m.role != "system"]
    documents = format_resource_documents(request)
    user_content = f"{documents}\n\n{request.message}" if documents else request.message
    messages.append({"role": "user", "content": user_content})
    return messages


class AiModelClient:

    def __init__(self, api_key: str | None = None, client: anthropic.Anthropic | None = None):
        self._api_key = api_key or os.getenv("ANTHROPIC_API_KEY")
        self._client = client

    def _get_client(self) -> anthropic.Anthropic:
        if self._client is None:
            if not self._api_key:
                raise ModelCallError("ANTHROPIC_API_KEY is not set in environment variables")
            self._client = anthropic.Anthropic(api_key=self._api_key)
        return self._client

    def call_unified_ai_model(self, request: ChatRequest) -> ModelResponse:
        with tracer.start_as_current_span("model.call") as span:
            span.set_attribute("model.id", request.model_id)
            span.set_attribute("model.api_identifier", request.api_identifier)
            span.set_attribute("request.document_count", len(request.resource_documents))

            kwargs = {
                "model": request.api_identifier,
                "max_tokens": request.max_tokens,
                "messages": build_messages(request),
            }
            if request.system_instruction:
                kwargs["system"] = request.system_instruction

            started = time.monotonic()
            try:
                message = self._get_client().messages.create(**kwargs)
            except anthropic.APIError as exc:
                logger.error("Model call to %s failed: %s", request.api_identifier, exc)
                raise ModelCallError(f"Model call to {request.api_identifier} failed: {exc}") from exc
            elapsed_ms = int((time.monotonic() - started) * 1000)

            content = "".join(
                block.text for block in (message.content or []) if getattr(block, "type", "text") == "text"
            )
            finish_reason = _STOP_REASONS.get(message.stop_reason, message.stop_reason)
            usage = getattr(message, "usage", None)

            span.set_attribute("response.finish_reason", finish_reason or "")
            span.set_attribute("response.length", len(content))

        logger.info(
            "Model %s responded: %d chars finish_reason=%s in %dms",
            request.api_identifier,
            len(content),
            finish_reason,
            elapsed_ms,
        )
        return ModelResponse(
            content=content,
            finish_reason=finish_reason,
            input_tokens=getattr(usage, "input_tokens", 0) or 0,
            output_tokens=getattr(usage, "output_tokens", 0) or 0,
            processing_time_ms=elapsed_ms,
        )
