# src/dialectic/services/embedding_service.py

import logging
import os

from openai import OpenAI, OpenAIError
from opentelemetry import trace

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

EMBEDDING_MODEL = os.getenv("DIALECTIC_EMBEDDING_MODEL", "text-embedding-3-small")
# Model limit is ~8191 tokens; 1 token ≈ 4 chars
MAX_EMBEDDING_CHARS = 30000


def generate_embedding(text: str) -> list[float] | None:
    """
    Embedding vector for `text`, or None when embeddings are unavailable.
    Callers treat None as "no similarity signal".
    """
    if not text or not text.strip():
        return None

    api_key = os.getenv("OPENAI_API_KEY")
    if not api_key:
        logger.warning("OPENAI_API_KEY not set, skipping embedding generation")
        return None

    with tracer.start_as_current_span("embeddings.generate") as span:
        span.set_attribute("embedding.model", EMBEDDING_MODEL)
        span.set_attribute("text.length", len(text))
        try:
            client = OpenAI(api_key=api_key)
            response = client.embeddings.create(
                model=EMBEDDING_MODEL,
                input=text[:MAX_EMBEDDING_CHARS],
            )
        except OpenAIError as exc:
            logger.error("Embedding generation failed: %s", exc)
            span.set_attribute("embedding.failed", True)
            return None

    return response.data[0].embedding
