import logging
import time

import anthropic

from ..clients.base import DirectClient
from ..errors import ProviderError
from ..models.chat import ChatCompletionChoice, ChatMessage, ChatRequest, ChatResponse, UsageInfo
from ..utils.cancellation import CallContext

logger = logging.getLogger(__name__)

VALIDATION_MODEL = "claude-3-haiku-20240307"


class AnthropicClient(DirectClient):
    """Direct client for the Anthropic Messages API."""
    PROVIDER = "anthropic"
    DEFAULT_BASE_URL = "https://api.anthropic.com"
    MODELS = (
        "claude-3-5-sonnet-20241022",
        "claude-3-opus-20240229",
        "claude-3-sonnet-20240229",
        "claude-3-haiku-20240307",
    )

    def __init__(self, api_key: str | None, base_url: str | None = None, default_max_tokens: int = 4000):
        super().__init__(api_key, base_url, default_max_tokens)
        self.client = anthropic.Anthropic(api_key=self.api_key, base_url=self.base_url, max_retries=0)

    def _build_kwargs(self, request: ChatRequest) -> dict:
        # The Messages API requires max_tokens and takes the system prompt separately
        kwargs = {
            "model": request.model,
            "max_tokens": request.max_tokens or self.default_max_tokens,
            "messages": request.conversation(),
        }
        system_prompt = request.system_prompt()
        if system_prompt:
            kwargs["system"] = system_prompt
        if request.temperature is not None:
            kwargs["temperature"] = request.temperature
        if request.top_p is not None:
            kwargs["top_p"] = request.top_p
        return kwargs

    def chat(self, request: ChatRequest, ctx: CallContext) -> ChatResponse:
        ctx.check()
        try:
            message = self.client.messages.create(**self._build_kwargs(request), timeout=ctx.remaining())
        except anthropic.AnthropicError as e:
            logger.error(f"Error making Anthropic API request: {e}")
            raise ProviderError(f"anthropic request failed: {e}") from e
        return self._convert_message(message, request.model)

    def _convert_message(self, message, fallback_model: str) -> ChatResponse:
        texts = [block.text for block in (message.content or []) if getattr(block, "type", None) == "text"]
        choices = []
        if texts:
            choices.append(ChatCompletionChoice(
                index=0,
                message=ChatMessage(role="assistant", content="".join(texts)),
                finish_reason=message.stop_reason,
            ))

        usage = None
        if message.usage:
            input_tokens = message.usage.input_tokens or 0
            output_tokens = message.usage.output_tokens or 0
            usage = UsageInfo(
                prompt_tokens=input_tokens,
                completion_tokens=output_tokens,
                total_tokens=input_tokens + output_tokens,
            )

        return ChatResponse(
            id=message.id,
            model=message.model or fallback_model,
            created=int(time.time()),
            choices=choices,
            usage=usage,
        )

    def validate_key(self) -> None:
        """Send a tiny request; only an authentication failure counts as invalid.

        Anthropic has no cheap key-check endpoint, so other API errors
        (rate limits, overload) leave the key presumed valid.
        """
        try:
            self.client.messages.create(
                model=VALIDATION_MODEL,
                max_tokens=10,
                messages=[{"role": "user", "content": "Hi"}],
                timeout=10,
            )
        except anthropic.AuthenticationError as e:
            raise ProviderError("invalid Anthropic API key") from e
        except anthropic.AnthropicError as e:
            logger.debug(f"Anthropic key check inconclusive: {e}")
