"""Shared helpers for provider clients.

Response parsing here handles the OpenAI chat completion body, which the
subscription gateway and every OpenAI-compatible provider return.
"""

from typing import Any

from ..errors import ProviderError
from ..models.chat import ChatCompletionChoice, ChatMessage, ChatResponse, UsageInfo


CHARS_PER_TOKEN = 4


def estimate_tokens(text: str) -> int:
    """Rough token count for responses that omit usage (~4 chars per token)."""
    return len(text) // CHARS_PER_TOKEN


def parse_chat_completion(payload: dict[str, Any], fallback_model: str) -> ChatResponse:
    """Build a ChatResponse from an OpenAI-style JSON body.

    Args:
        payload: Decoded JSON. A ``{"success": ..., "data": {...}}`` envelope is
            unwrapped first.
        fallback_model: Model name to use when the body has none.

    Raises:
        ProviderError: If the body reports an error or is not a JSON object.
    """
    if not isinstance(payload, dict):
        raise ProviderError("provider response was not a JSON object")

    if "data" in payload and isinstance(payload["data"], dict):
        if payload.get("success") is False:
            error = payload.get("error") or {}
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise ProviderError(f"provider error: {message or 'unknown error'}")
        payload = payload["data"]

    choices = []
    for index, raw_choice in enumerate(payload.get("choices") or []):
        if not isinstance(raw_choice, dict):
            continue
        message = raw_choice.get("message")
        if not isinstance(message, dict):
            continue
        choices.append(ChatCompletionChoice(
            index=raw_choice.get("index", index),
            message=ChatMessage(role="assistant", content=message.get("content") or ""),
            finish_reason=raw_choice.get("finish_reason"),
        ))

    usage = None
    raw_usage = payload.get("usage")
    if isinstance(raw_usage, dict):
        usage = UsageInfo(
            prompt_tokens=int(raw_usage.get("prompt_tokens") or 0),
            completion_tokens=int(raw_usage.get("completion_tokens") or 0),
            total_tokens=int(raw_usage.get("total_tokens") or 0),
        )

    fields: dict[str, Any] = {"model": payload.get("model") or fallback_model, "choices": choices, "usage": usage}
    if isinstance(payload.get("id"), str):
        fields["id"] = payload["id"]
    if isinstance(payload.get("created"), (int, float)):
        fields["created"] = int(payload["created"])
    return ChatResponse(**fields)
