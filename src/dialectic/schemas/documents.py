from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict


class SourceDocument(BaseModel):
    """A content-bearing input resolved from one of the document families."""
    model_config = ConfigDict(extra="allow", protected_namespaces=())

    id: str
    content: str = ""
    document_key: str | None = None
    # document | feedback | header_context | contribution | seed_prompt | project_resource
    type: str | None = None
    stage_slug: str | None = None
    iteration_number: int | None = None

    model_id: str | None = None
    model_name: str | None = None
    contribution_type: str | None = None
    document_relationships: dict[str, Any] | None = None
    created_at: datetime | None = None

    storage_bucket: str | None = None
    storage_path: str | None = None
    file_name: str | None = None

    def has_identity(self) -> bool:
        return bool(self.document_key and self.type and self.stage_slug)

    @property
    def source_group(self) -> str | None:
        relationships = self.document_relationships or {}
        value = relationships.get("source_group")
        return value if isinstance(value, str) and value else None


class ResourceDocument(BaseModel):
    """A document as placed into a model request. Identity may be filled in later."""
    model_config = ConfigDict(extra="allow")

    id: str
    content: str
    document_key: str | None = None
    type: str | None = None
    stage_slug: str | None = None
    storage_path: str | None = None
    file_name: str | None = None

    def has_identity(self) -> bool:
        return bool(self.document_key and self.type and self.stage_slug)


class CompressionCandidate(BaseModel):
    id: str
    content: str
    source_type: str = "document"
    original_index: int
    relevance: float = 1.0
    similarity: float = 0.0
    value_score: float = 0.0
    effective_score: float = 0.0
