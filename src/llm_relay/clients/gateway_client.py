import json
import logging

import requests

from ..errors import ProviderError
from ..models.chat import ChatRequest, ChatResponse
from ..utils.cancellation import CallContext
from .utils import parse_chat_completion

logger = logging.getLogger(__name__)

GATEWAY_PROVIDER = "subscription_gateway"
SUBSCRIPTION_MODELS = (
    "gpt-4",
    "gpt-4o",
    "claude-3-5-sonnet",
    "claude-3-opus",
    "deepseek-chat",
    "deepseek-reasoner",
    "grok-beta",
)


class SubscriptionGatewayClient:
    """Client for the shared subscription gateway.

    The gateway fronts every provider behind one authenticated endpoint and
    answers in the OpenAI chat completion format.
    """

    def __init__(self, base_url: str, token: str, user_id: str = "default", timeout: float = 60.0):
        if not token:
            raise ValueError("Subscription gateway token not found.")
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.user_id = user_id
        self.timeout = timeout

    def _headers(self) -> dict:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.token}",
            "X-User-ID": self.user_id,
        }

    def chat(self, request: ChatRequest, ctx: CallContext, provider: str) -> ChatResponse:
        """Send ``request`` through the gateway to ``provider``.

        Raises:
            ProviderError: On connection errors, non-200 status or a bad body.
        """
        ctx.check()
        url = f"{self.base_url}/api/auth-models/{provider}/chat/completions"
        payload = request.model_dump(mode="json", exclude_none=True, exclude={"user_context"})
        if request.user_context:
            payload["user_context"] = request.user_context
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(f"Gateway request to {url}: {json.dumps(payload)}")

        try:
            response = requests.post(
                url,
                json=payload,
                headers=self._headers(),
                timeout=ctx.remaining(self.timeout),
            )
        except requests.exceptions.RequestException as e:
            error_msg = f"Could not connect to subscription gateway at {self.base_url}" if isinstance(e, requests.exceptions.ConnectionError) else str(e)
            logger.error(f"Gateway request failed: {error_msg}")
            raise ProviderError(f"gateway request failed: {error_msg}") from e

        if response.status_code != 200:
            raise ProviderError(f"gateway API error: {response.status_code}")

        try:
            body = response.json()
        except ValueError as e:
            raise ProviderError("gateway response was not valid JSON") from e

        return parse_chat_completion(body, request.model)

    def get_models(self) -> list[str]:
        return list(SUBSCRIPTION_MODELS)
