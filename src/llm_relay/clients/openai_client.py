import json
import logging

from openai import OpenAI, OpenAIError, AuthenticationError

from ..clients.base import DirectClient
from ..errors import ProviderError
from ..models.chat import ChatCompletionChoice, ChatMessage, ChatRequest, ChatResponse, UsageInfo
from ..utils.cancellation import CallContext

logger = logging.getLogger(__name__)


class OpenAIClient(DirectClient):
    """Direct client for the OpenAI chat completions API.

    DeepSeek and Grok speak the same protocol and only differ in base URL and
    model list, so they subclass this client.
    """
    PROVIDER = "openai"
    DEFAULT_BASE_URL = "https://api.openai.com/v1"
    MODELS = ("gpt-4", "gpt-4o", "gpt-3.5-turbo", "gpt-4-turbo")

    def __init__(self, api_key: str | None, base_url: str | None = None, default_max_tokens: int = 4000):
        super().__init__(api_key, base_url, default_max_tokens)
        # Retries are the router's and executor's job
        self.client = OpenAI(api_key=self.api_key, base_url=self.base_url, max_retries=0)

    # ---- Token parameter handling helpers ----
    _TOKEN_PARAM_CANDIDATES = ("max_tokens", "max_completion_tokens")

    def _likely_new_api_model(self, model: str) -> bool:
        """Heuristic: reasoning models only accept 'max_completion_tokens'."""
        m = model.lower()
        return m.startswith("o1") or m.startswith("o3") or m.startswith("o4")

    def _is_token_param_error(self, error: OpenAIError) -> bool:
        msg = str(error).lower()
        return "unsupported parameter" in msg and any(k in msg for k in self._TOKEN_PARAM_CANDIDATES)

    def _build_payload(self, request: ChatRequest) -> dict:
        payload = {
            "model": request.model,
            "messages": request.api_messages(),
        }
        if request.temperature is not None:
            payload["temperature"] = request.temperature
        if request.top_p is not None:
            payload["top_p"] = request.top_p
        if request.max_tokens:
            key = "max_completion_tokens" if self._likely_new_api_model(request.model) else "max_tokens"
            payload[key] = request.max_tokens
        return payload

    def _create_with_token_fallback(self, payload: dict, timeout: float | None):
        """Call chat.completions.create, retrying once under the other token key.

        Only errors that name the token parameter trigger the retry.
        """
        try:
            return self.client.chat.completions.create(**payload, timeout=timeout)
        except OpenAIError as e:
            current_key = next((k for k in self._TOKEN_PARAM_CANDIDATES if k in payload), None)
            if current_key is None or not self._is_token_param_error(e):
                raise
            retry_payload = dict(payload)
            value = retry_payload.pop(current_key)
            other_key = next(k for k in self._TOKEN_PARAM_CANDIDATES if k != current_key)
            retry_payload[other_key] = value
            logger.debug(f"{self.PROVIDER} rejected '{current_key}', retrying with '{other_key}'")
            return self.client.chat.completions.create(**retry_payload, timeout=timeout)

    def chat(self, request: ChatRequest, ctx: CallContext) -> ChatResponse:
        ctx.check()
        payload = self._build_payload(request)
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(f"{self.PROVIDER} request payload: {json.dumps(payload)}")

        try:
            completion = self._create_with_token_fallback(payload, ctx.remaining())
        except OpenAIError as e:
            logger.error(f"Error making {self.PROVIDER} API request: {e}")
            raise ProviderError(f"{self.PROVIDER} request failed: {e}") from e

        return self._convert_completion(completion, request.model)

    def _convert_completion(self, completion, fallback_model: str) -> ChatResponse:
        choices = [
            ChatCompletionChoice(
                index=choice.index,
                message=ChatMessage(role="assistant", content=choice.message.content or ""),
                finish_reason=choice.finish_reason,
            )
            for choice in (completion.choices or [])
        ]
        usage = None
        if completion.usage:
            usage = UsageInfo(
                prompt_tokens=completion.usage.prompt_tokens or 0,
                completion_tokens=completion.usage.completion_tokens or 0,
                total_tokens=completion.usage.total_tokens or 0,
            )
            logger.debug(
                f"{self.PROVIDER} Tokens: Prompt={usage.prompt_tokens}, "
                f"Completion={usage.completion_tokens}, Total={usage.total_tokens}"
            )
        return ChatResponse(
            id=completion.id,
            model=completion.model or fallback_model,
            created=completion.created,
            choices=choices,
            usage=usage,
        )

    def validate_key(self) -> None:
        try:
            self.client.models.list(timeout=10)
        except AuthenticationError as e:
            raise ProviderError(f"invalid {self.PROVIDER} API key") from e
        except OpenAIError as e:
            raise ProviderError(f"{self.PROVIDER} API validation error: {e}") from e


class DeepSeekClient(OpenAIClient):
    PROVIDER = "deepseek"
    DEFAULT_BASE_URL = "https://api.deepseek.com/v1"
    MODELS = ("deepseek-chat", "deepseek-coder", "deepseek-reasoner")


class GrokClient(OpenAIClient):
    PROVIDER = "grok"
    DEFAULT_BASE_URL = "https://api.x.ai/v1"
    MODELS = ("grok-beta", "grok-vision-beta")
