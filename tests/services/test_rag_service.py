# tests/services/test_rag_service.py

from unittest.mock import Mock, patch

import anthropic
import httpx

from dialectic.schemas.documents import ResourceDocument
from dialectic.schemas.model_call import ProviderConfig
from dialectic.services.rag_service import RagService, SUMMARY_MODEL, _build_summary_prompt

PROVIDER = ProviderConfig(model_id="model-1", api_identifier="claude", context_window_tokens=10_000)
DOCS = [ResourceDocument(id="d1", content="Long thesis text", document_key="business_case")]


def test_summary_prompt_names_stage_and_documents():
    prompt = _build_summary_prompt(DOCS, "synthesis", 500)

    assert "'synthesis' stage" in prompt
    assert "--- business_case ---\nLong thesis text" in prompt
    assert "at most 500 tokens" in prompt


def test_empty_input_returns_empty_context():
    result = RagService(client=Mock()).get_context_for_model([], PROVIDER, "session-1")

    assert result.context == ""
    assert result.error is None


def test_returns_summary():
    client = Mock()
    client.messages.create.return_value = Mock(content=[Mock(text="Condensed")], usage=Mock(input_tokens=300))

    result = RagService(client=client).get_context_for_model(DOCS, PROVIDER, "session-1", stage_slug="synthesis")

    assert result.context == "Condensed"
    assert result.tokens_used_for_indexing == 300
    kwargs = client.messages.create.call_args.kwargs
    assert kwargs["model"] == SUMMARY_MODEL
    assert kwargs["max_tokens"] == 1000


def test_api_error_reported_in_result():
    client = Mock()
    client.messages.create.side_effect = anthropic.APIError(
        "rate limited", request=httpx.Request("POST", "https://api.anthropic.com/v1/messages"), body=None
    )

    result = RagService(client=client).get_context_for_model(DOCS, PROVIDER, "session-1")

    assert result.error == "rate limited"


def test_missing_api_key_reported_in_result(monkeypatch):
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)

    result = RagService().get_context_for_model(DOCS, PROVIDER, "session-1")

    assert "ANTHROPIC_API_KEY" in result.error


@patch("dialectic.services.rag_service.anthropic.Anthropic")
def test_small_window_uses_floor_target(mock_anthropic_class, monkeypatch):
    monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant-test-key")
    mock_client = Mock()
    mock_client.messages.create.return_value = Mock(content=[Mock(text="x")], usage=None)
    mock_anthropic_class.return_value = mock_client
    small = ProviderConfig(model_id="m", api_identifier="claude", context_window_tokens=1000)

    RagService().get_context_for_model(DOCS, small, "session-1")

    assert mock_client.messages.create.call_args.kwargs["max_tokens"] == 256
