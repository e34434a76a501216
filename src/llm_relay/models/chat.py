"""
Pydantic models for chat requests and responses.

Requests and responses follow the OpenAI chat completion shape, extended with
the routing fields the provider router reads and writes.
"""

import time
import uuid
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field


class RoutingStrategy(str, Enum):
    """How the router picks between a direct client and the subscription gateway."""
    USER_KEY_FIRST = "user_key_first"
    SUBSCRIPTION = "subscription"
    USER_KEY_ONLY = "user_key_only"
    COST_OPTIMIZED = "cost_optimized"
    BALANCED = "balanced"
    FORCE_PROVIDER = "force_provider"


class BillingTarget(str, Enum):
    USER_KEY = "user_key"
    SUBSCRIPTION = "subscription"


class ChatMessage(BaseModel):
    """OpenAI-compatible chat message."""
    role: Literal["system", "user", "assistant"]
    content: str


class ChatRequest(BaseModel):
    """A single chat completion request, plus routing options."""
    model: str
    messages: list[ChatMessage]
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    max_tokens: int | None = Field(default=None, gt=0)
    top_p: float | None = Field(default=None, ge=0.0, le=1.0)
    strategy: RoutingStrategy = RoutingStrategy.USER_KEY_FIRST
    force_provider: str | None = None
    user_context: dict[str, Any] = Field(default_factory=dict)

    def system_prompt(self) -> str | None:
        """Join all system messages, or None if there are none."""
        parts = [m.content for m in self.messages if m.role == "system" and m.content]
        return "\n\n".join(parts) if parts else None

    def conversation(self) -> list[dict]:
        """Non-system messages in API format."""
        return [m.model_dump() for m in self.messages if m.role != "system"]

    def api_messages(self) -> list[dict]:
        return [m.model_dump() for m in self.messages]


class UsageInfo(BaseModel):
    """Token usage information."""
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class ChatCompletionChoice(BaseModel):
    index: int = 0
    message: ChatMessage
    finish_reason: str | None = "stop"


class ChatResponse(BaseModel):
    """Chat completion response tagged with routing and billing metadata."""
    id: str = Field(default_factory=lambda: f"chatcmpl-{uuid.uuid4().hex[:12]}")
    model: str
    created: int = Field(default_factory=lambda: int(time.time()))
    choices: list[ChatCompletionChoice] = Field(default_factory=list)
    usage: UsageInfo | None = None
    # Set by the router
    provider: str = ""
    routed_via: str = ""
    billed_to: str = ""

    @property
    def content(self) -> str | None:
        """Text of the first choice, or None for an empty response."""
        if not self.choices:
            return None
        return self.choices[0].message.content

    def tagged(self, provider: str, routed_via: str, billed_to: BillingTarget) -> "ChatResponse":
        return self.model_copy(update={
            "provider": provider,
            "routed_via": routed_via,
            "billed_to": billed_to.value,
        })

    def routing_metadata(self) -> dict[str, Any]:
        """Routing, billing and usage facts for checkpoint metadata."""
        usage = self.usage or UsageInfo()
        return {
            "provider": self.provider,
            "routed_via": self.routed_via,
            "billed_to": self.billed_to,
            "prompt_tokens": usage.prompt_tokens,
            "completion_tokens": usage.completion_tokens,
            "total_tokens": usage.total_tokens,
        }
