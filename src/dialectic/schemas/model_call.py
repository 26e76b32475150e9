from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict

from dialectic.schemas.documents import ResourceDocument


class ChatMessage(BaseModel):
    role: str
    content: str


class ProviderConfig(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    model_id: str
    api_identifier: str
    name: str | None = None
    provider: str = "anthropic"
    context_window_tokens: int
    max_output_tokens: int = 4096

    @classmethod
    def from_row(cls, row) -> "ProviderConfig":
        config: dict[str, Any] = row.config or {}
        return cls(
            model_id=row.id,
            api_identifier=row.api_identifier,
            name=row.name,
            provider=row.provider,
            context_window_tokens=int(config.get("context_window_tokens") or 200_000),
            max_output_tokens=int(config.get("provider_max_output_tokens") or 4096),
        )


class PromptConstructionPayload(BaseModel):
    system_instruction: str | None = None
    conversation_history: list[ChatMessage] = []
    resource_documents: list[ResourceDocument] = []
    current_user_prompt: str
    source_contribution_id: str | None = None


class ChatRequest(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    model_id: str
    api_identifier: str
    system_instruction: str | None = None
    conversation_history: list[ChatMessage] = []
    resource_documents: list[ResourceDocument] = []
    message: str
    max_tokens: int = 4096


class ModelResponse(BaseModel):
    content: str
    content_type: str = "text/markdown"
    finish_reason: str | None = None
    input_tokens: int = 0
    output_tokens: int = 0
    processing_time_ms: int = 0


class RagContextResult(BaseModel):
    context: str = ""
    error: str | None = None
    tokens_used_for_indexing: int = 0
