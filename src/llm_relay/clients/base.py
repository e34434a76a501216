from abc import ABC, abstractmethod
from typing import List

from ..models.chat import ChatRequest, ChatResponse
from ..utils.cancellation import CallContext


class DirectClient(ABC):
    """Abstract base class for clients that call a provider with the user's own key."""

    PROVIDER: str = ""
    DEFAULT_BASE_URL: str = ""
    MODELS: tuple[str, ...] = ()

    def __init__(self, api_key: str | None, base_url: str | None = None, default_max_tokens: int = 4000):
        if not api_key:
            raise ValueError(f"{self.PROVIDER} API key not found.")
        self.api_key = api_key
        self.base_url = (base_url or self.DEFAULT_BASE_URL).rstrip("/")
        self.default_max_tokens = default_max_tokens

    @abstractmethod
    def chat(self, request: ChatRequest, ctx: CallContext) -> ChatResponse:
        """Send a chat request to the provider.

        Args:
            request: The chat request. Routing fields are ignored here.
            ctx: Cancellation signal and deadline for this call.

        Returns:
            The untagged provider response.

        Raises:
            ProviderError: On any transport, API or decoding failure.
        """
        pass

    def get_models(self) -> List[str]:
        """Model names this provider serves for the user's key."""
        return list(self.MODELS)

    @abstractmethod
    def validate_key(self) -> None:
        """Raise ProviderError if the configured key is rejected."""
        pass

    def __repr__(self) -> str:
        return f"{type(self).__name__}(base_url={self.base_url!r})"
