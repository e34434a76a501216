import pytest
from types import SimpleNamespace
from unittest.mock import patch, MagicMock

import openai
from openai import OpenAIError

from llm_relay.clients.base import DirectClient
from llm_relay.clients.openai_client import DeepSeekClient, GrokClient, OpenAIClient
from llm_relay.errors import ProviderError, RunCancelledError
from llm_relay.models.chat import ChatMessage, ChatRequest
from llm_relay.utils.cancellation import CallContext


def _completion(content="Hello there", usage=True):
    return SimpleNamespace(
        id="chatcmpl-123",
        model="gpt-4o-2024-08-06",
        created=1700000000,
        choices=[SimpleNamespace(index=0, message=SimpleNamespace(content=content), finish_reason="stop")],
        usage=SimpleNamespace(prompt_tokens=7, completion_tokens=3, total_tokens=10) if usage else None,
    )


class TestOpenAIClient:
    """Test suite for OpenAIClient class."""

    @pytest.fixture
    def mock_openai_api(self):
        """Mocks the openai.OpenAI client constructor."""
        with patch('llm_relay.clients.openai_client.OpenAI') as mock_openai_constructor:
            yield mock_openai_constructor

    @pytest.fixture
    def client(self, mock_openai_api):
        return OpenAIClient("test-api-key")

    @pytest.fixture
    def request_obj(self):
        return ChatRequest(
            model="gpt-4o",
            messages=[
                ChatMessage(role="system", content="Be brief."),
                ChatMessage(role="user", content="Hi"),
            ],
            temperature=0.2,
            max_tokens=50,
        )

    def test_init(self, mock_openai_api):
        client = OpenAIClient("test-api-key")
        assert isinstance(client, DirectClient)
        assert client.base_url == "https://api.openai.com/v1"
        mock_openai_api.assert_called_once_with(api_key="test-api-key", base_url="https://api.openai.com/v1", max_retries=0)

    def test_init_missing_api_key(self, mock_openai_api):
        with pytest.raises(ValueError, match="openai API key not found"):
            OpenAIClient(None)

    def test_compatible_providers_use_their_base_urls(self, mock_openai_api):
        assert DeepSeekClient("k").base_url == "https://api.deepseek.com/v1"
        assert GrokClient("k", base_url="https://proxy.example/v1/").base_url == "https://proxy.example/v1"
        assert "deepseek-chat" in DeepSeekClient("k").get_models()

    def test_chat_payload_and_response(self, client, request_obj):
        client.client.chat.completions.create.return_value = _completion()

        response = client.chat(request_obj, CallContext(timeout=30))

        kwargs = client.client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o"
        assert kwargs["messages"] == [
            {"role": "system", "content": "Be brief."},
            {"role": "user", "content": "Hi"},
        ]
        assert kwargs["temperature"] == 0.2
        assert kwargs["max_tokens"] == 50
        assert "top_p" not in kwargs
        assert 0 < kwargs["timeout"] <= 30

        assert response.content == "Hello there"
        assert response.id == "chatcmpl-123"
        assert response.model == "gpt-4o-2024-08-06"
        assert response.usage.total_tokens == 10
        # Routing tags are the router's job
        assert response.provider == ""

    def test_reasoning_models_use_max_completion_tokens(self, client):
        client.client.chat.completions.create.return_value = _completion()
        request = ChatRequest(model="o3-mini", messages=[ChatMessage(role="user", content="Hi")], max_tokens=64)

        client.chat(request, CallContext())

        kwargs = client.client.chat.completions.create.call_args.kwargs
        assert kwargs["max_completion_tokens"] == 64
        assert "max_tokens" not in kwargs

    def test_token_parameter_error_retries_with_other_key(self, client, request_obj):
        client.client.chat.completions.create.side_effect = [
            OpenAIError("Unsupported parameter: 'max_tokens' is not supported with this model."),
            _completion(),
        ]

        response = client.chat(request_obj, CallContext())

        assert response.content == "Hello there"
        second = client.client.chat.completions.create.call_args_list[1].kwargs
        assert second["max_completion_tokens"] == 50
        assert "max_tokens" not in second

    def test_other_errors_become_provider_error(self, client, request_obj):
        client.client.chat.completions.create.side_effect = OpenAIError("rate limited")

        with pytest.raises(ProviderError, match="openai request failed: rate limited"):
            client.chat(request_obj, CallContext())
        assert client.client.chat.completions.create.call_count == 1

    def test_missing_usage(self, client, request_obj):
        client.client.chat.completions.create.return_value = _completion(usage=False)
        assert client.chat(request_obj, CallContext()).usage is None

    def test_cancelled_context_skips_call(self, client, request_obj):
        ctx = CallContext()
        ctx.cancel_event.set()
        with pytest.raises(RunCancelledError):
            client.chat(request_obj, ctx)
        client.client.chat.completions.create.assert_not_called()

    def test_validate_key_ok(self, client):
        client.validate_key()
        client.client.models.list.assert_called_once_with(timeout=10)

    def test_validate_key_rejected(self, client):
        client.client.models.list.side_effect = openai.AuthenticationError(
            "bad key", response=MagicMock(status_code=401), body=None
        )
        with pytest.raises(ProviderError, match="invalid openai API key"):
            client.validate_key()

    def test_validate_key_other_error(self, client):
        client.client.models.list.side_effect = OpenAIError("connection reset")
        with pytest.raises(ProviderError, match="validation error"):
            client.validate_key()
