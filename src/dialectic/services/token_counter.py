"""
Token estimates for assembled requests.

Uses the ~4 characters per token heuristic; good enough to decide whether
a request is near a context window without a provider round-trip.
"""
import math

from dialectic.schemas.model_call import ChatRequest

CHARS_PER_TOKEN = 4
MESSAGE_OVERHEAD_TOKENS = 4


def estimate_tokens(text: str | None) -> int:
    if not text:
        return 0
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def count_request_tokens(request: ChatRequest) -> int:
    total = 0
    if request.system_instruction:
        total += estimate_tokens(request.system_instruction) + MESSAGE_OVERHEAD_TOKENS
    for message in request.conversation_history:
        total += estimate_tokens(message.content) + MESSAGE_OVERHEAD_TOKENS
    for document in request.resource_documents:
        total += estimate_tokens(document.content) + MESSAGE_OVERHEAD_TOKENS
    total += estimate_tokens(request.message) + MESSAGE_OVERHEAD_TOKENS
    return total
