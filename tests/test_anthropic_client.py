import pytest
from types import SimpleNamespace
from unittest.mock import patch, MagicMock

import anthropic

from llm_relay.clients.anthropic_client import AnthropicClient
from llm_relay.errors import ProviderError
from llm_relay.models.chat import ChatMessage, ChatRequest
from llm_relay.utils.cancellation import CallContext


def _message(texts=("Bonjour",), usage=(12, 5)):
    return SimpleNamespace(
        id="msg_01",
        model="claude-3-5-sonnet-20241022",
        stop_reason="end_turn",
        content=[SimpleNamespace(type="text", text=t) for t in texts],
        usage=SimpleNamespace(input_tokens=usage[0], output_tokens=usage[1]) if usage else None,
    )


@pytest.fixture
def mock_anthropic_api():
    with patch('llm_relay.clients.anthropic_client.anthropic.Anthropic') as constructor:
        yield constructor


@pytest.fixture
def client(mock_anthropic_api):
    return AnthropicClient("sk-ant-test", default_max_tokens=4000)


def test_system_prompt_is_sent_separately(client):
    client.client.messages.create.return_value = _message()
    request = ChatRequest(
        model="claude-3-5-sonnet",
        messages=[
            ChatMessage(role="system", content="translate"),
            ChatMessage(role="user", content="hello"),
        ],
        temperature=0.3,
    )

    response = client.chat(request, CallContext())

    kwargs = client.client.messages.create.call_args.kwargs
    assert kwargs["system"] == "translate"
    assert kwargs["messages"] == [{"role": "user", "content": "hello"}]
    assert kwargs["max_tokens"] == 4000
    assert kwargs["temperature"] == 0.3
    assert response.content == "Bonjour"
    assert response.model == "claude-3-5-sonnet-20241022"


def test_usage_total_is_input_plus_output(client):
    client.client.messages.create.return_value = _message(usage=(12, 5))
    request = ChatRequest(model="claude-3-opus", messages=[ChatMessage(role="user", content="x")], max_tokens=20)

    response = client.chat(request, CallContext())

    assert client.client.messages.create.call_args.kwargs["max_tokens"] == 20
    assert "system" not in client.client.messages.create.call_args.kwargs
    assert (response.usage.prompt_tokens, response.usage.completion_tokens, response.usage.total_tokens) == (12, 5, 17)


def test_text_blocks_are_joined(client):
    client.client.messages.create.return_value = _message(texts=("part one, ", "part two"))
    request = ChatRequest(model="claude-3-opus", messages=[ChatMessage(role="user", content="x")])
    assert client.chat(request, CallContext()).content == "part one, part two"


def test_no_text_means_empty_response(client):
    client.client.messages.create.return_value = _message(texts=())
    request = ChatRequest(model="claude-3-opus", messages=[ChatMessage(role="user", content="x")])
    assert client.chat(request, CallContext()).content is None


def test_sdk_error_becomes_provider_error(client):
    client.client.messages.create.side_effect = anthropic.AnthropicError("overloaded")
    request = ChatRequest(model="claude-3-opus", messages=[ChatMessage(role="user", content="x")])
    with pytest.raises(ProviderError, match="anthropic request failed"):
        client.chat(request, CallContext())


def test_validate_key_only_fails_on_auth_error(client):
    client.client.messages.create.side_effect = anthropic.AnthropicError("rate limited")
    client.validate_key()

    client.client.messages.create.side_effect = anthropic.AuthenticationError(
        "invalid x-api-key", response=MagicMock(status_code=401), body=None
    )
    with pytest.raises(ProviderError, match="invalid Anthropic API key"):
        client.validate_key()
