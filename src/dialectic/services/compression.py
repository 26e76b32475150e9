"""
Ranking of resource documents for context-window compression.

    effective_score = relevance * (1 - similarity)

Candidates are compressed lowest score first. Relevance comes from the
step's `inputs_relevance`: a rule for the same document key and stage wins
over a rule for the document key alone, and a document no rule matches is
unweighted (relevance 1.0). Equal scores keep the documents' original order,
with resource documents ahead of history messages.

Conversation history contributes its middle messages as candidates. The
anchors stay verbatim: system messages, the first user and first assistant
message, and the last HISTORY_TAIL_SIZE messages, which carry the latest
exchange and any continuation prompt. History candidates are unweighted.
"""

from __future__ import annotations

import logging
import math
from typing import Callable, Iterable

from opentelemetry import trace

from dialectic.schemas.documents import CompressionCandidate, ResourceDocument
from dialectic.schemas.model_call import ChatMessage
from dialectic.schemas.recipe import RelevanceRule

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

DEFAULT_RELEVANCE = 1.0
HISTORY_TAIL_SIZE = 4

EmbedFn = Callable[[str], "list[float] | None"]


def cosine_similarity(vec_a: list[float], vec_b: list[float]) -> float:
    """Cosine similarity; 0.0 for empty, zero-length or mismatched vectors."""
    if not vec_a or not vec_b or len(vec_a) != len(vec_b):
        return 0.0

    dot_product = sum(a * b for a, b in zip(vec_a, vec_b))
    norm_a = math.sqrt(sum(a * a for a in vec_a))
    norm_b = math.sqrt(sum(b * b for b in vec_b))

    if norm_a == 0 or norm_b == 0:
        return 0.0

    return dot_product / (norm_a * norm_b)


def _rule_matches_type(rule: RelevanceRule, document: ResourceDocument) -> bool:
    return rule.type is None or document.type is None or rule.type == document.type


def resolve_relevance(document: ResourceDocument, rules: Iterable[RelevanceRule] | None) -> float:
    if not rules or not document.document_key:
        return DEFAULT_RELEVANCE

    general: float | None = None
    for rule in rules:
        if rule.document_key != document.document_key or not _rule_matches_type(rule, document):
            continue
        stage = rule.target_stage
        if stage:
            if stage == document.stage_slug:
                return rule.relevance
            continue
        if general is None:
            general = rule.relevance

    return general if general is not None else DEFAULT_RELEVANCE


def history_candidate_id(index: int) -> str:
    return f"history-{index}"


def history_anchor_indices(history: list[ChatMessage]) -> set[int]:
    anchors = {i for i, message in enumerate(history) if message.role == "system"}
    for role in ("user", "assistant"):
        first = next((i for i, message in enumerate(history) if message.role == role), None)
        if first is not None:
            anchors.add(first)
    anchors.update(range(max(0, len(history) - HISTORY_TAIL_SIZE), len(history)))
    return anchors


def get_sorted_compression_candidates(
    documents: list[ResourceDocument],
    current_prompt: str,
    inputs_relevance: list[RelevanceRule] | None,
    embed: EmbedFn,
    exclude_ids: set[str] | None = None,
    history: list[ChatMessage] | None = None,
) -> list[CompressionCandidate]:
    """Score resource documents and middle history messages, in compression order."""
    exclude_ids = exclude_ids or set()
    history = history or []

    with tracer.start_as_current_span("compression.score_candidates") as span:
        span.set_attribute("compression.document_count", len(documents))
        span.set_attribute("compression.history_count", len(history))

        prompt_vector = embed(current_prompt) if current_prompt else None

        def score(content: str, relevance: float, **fields) -> CompressionCandidate:
            content_vector = embed(content) if prompt_vector else None
            similarity = cosine_similarity(prompt_vector, content_vector) if content_vector else 0.0
            return CompressionCandidate(
                content=content,
                relevance=relevance,
                similarity=similarity,
                value_score=similarity,
                effective_score=relevance * (1 - similarity),
                **fields,
            )

        candidates: list[CompressionCandidate] = []
        for index, document in enumerate(documents):
            if document.id in exclude_ids:
                continue
            candidates.append(
                score(
                    document.content,
                    resolve_relevance(document, inputs_relevance),
                    id=document.id,
                    source_type="document",
                    original_index=index,
                )
            )

        anchors = history_anchor_indices(history)
        for index, message in enumerate(history):
            candidate_id = history_candidate_id(index)
            if index in anchors or candidate_id in exclude_ids:
                continue
            candidates.append(
                score(
                    message.content,
                    DEFAULT_RELEVANCE,
                    id=candidate_id,
                    source_type="history",
                    original_index=index,
                )
            )

        candidates.sort(key=lambda c: (c.effective_score, c.source_type == "history", c.original_index))
        span.set_attribute("compression.candidate_count", len(candidates))

    logger.debug(
        "Compression order: %s",
        [(c.id, round(c.effective_score, 4)) for c in candidates],
    )
    return candidates
