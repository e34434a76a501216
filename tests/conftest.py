import threading

import pytest

from llm_relay.clients.base import DirectClient
from llm_relay.errors import ProviderError
from llm_relay.models.chain import Chain, Model
from llm_relay.models.chat import (
    BillingTarget,
    ChatCompletionChoice,
    ChatMessage,
    ChatRequest,
    ChatResponse,
    UsageInfo,
)
from llm_relay.service.executor import ChainExecutor
from llm_relay.storage.memory import InMemoryChainStore, InMemoryCheckpointStore


def make_response(content, model="gpt-4o", total_tokens=None, prompt_tokens=0, completion_tokens=0):
    """Untagged provider response with a single choice."""
    usage = None
    if total_tokens is not None:
        usage = UsageInfo(prompt_tokens=prompt_tokens, completion_tokens=completion_tokens, total_tokens=total_tokens)
    choices = []
    if content is not None:
        choices.append(ChatCompletionChoice(message=ChatMessage(role="assistant", content=content)))
    return ChatResponse(model=model, choices=choices, usage=usage)


class FakeDirectClient(DirectClient):
    """Direct client that answers from memory and records requests."""
    PROVIDER = "openai"
    MODELS = ("gpt-4o",)

    def __init__(self, reply="direct reply", error=None, invalid=False, models=None, on_chat=None):
        super().__init__("test-key")
        self.on_chat = on_chat
        self.reply = reply
        self.error = error
        self.invalid = invalid
        if models is not None:
            self.MODELS = tuple(models)
        self.calls = []

    def chat(self, request, ctx):
        self.calls.append(request)
        if self.error is not None:
            raise self.error
        if self.on_chat is not None:
            self.on_chat(ctx)
        return make_response(self.reply, request.model, total_tokens=10, prompt_tokens=4, completion_tokens=6)

    def validate_key(self):
        if self.invalid:
            raise ProviderError("invalid key")


class FakeGateway:
    """Subscription gateway stand-in."""

    def __init__(self, reply="gateway reply", error=None):
        self.reply = reply
        self.error = error
        self.calls = []

    def chat(self, request, ctx, provider):
        self.calls.append((request, provider))
        if self.error is not None:
            raise self.error
        return make_response(self.reply, request.model, total_tokens=20, prompt_tokens=8, completion_tokens=12)

    def get_models(self):
        return ["gpt-4o", "claude-3-5-sonnet"]


def prompt_echo(request, ctx):
    """Answer ``prompt(input)`` billed to the user's key."""
    system = request.system_prompt() or ""
    user = request.messages[-1].content
    response = make_response(f"{system}({user})", request.model, total_tokens=5, prompt_tokens=2, completion_tokens=3)
    return response.tagged("user_openai", request.strategy.value, BillingTarget.USER_KEY)


class ScriptedRouter:
    """Router stand-in: every call is answered by ``handler(request, ctx)``."""

    def __init__(self, handler=prompt_echo):
        self.handler = handler
        self.requests: list[ChatRequest] = []
        self._lock = threading.Lock()

    def chat(self, request, ctx=None):
        with self._lock:
            self.requests.append(request)
        return self.handler(request, ctx)


@pytest.fixture
def chain_store():
    return InMemoryChainStore()


@pytest.fixture
def checkpoint_store():
    return InMemoryCheckpointStore()


@pytest.fixture
def two_step_chain(chain_store):
    chain = Chain(
        name="summarize-then-translate",
        models=(
            Model(name="gpt-4o", role="summarizer", prompt="summarize"),
            Model(name="claude-3-5-sonnet", role="translator", prompt="translate"),
        ),
    )
    chain_store.save(chain)
    return chain


@pytest.fixture
def make_executor(chain_store, checkpoint_store):
    """Build executors over the shared in-memory stores and shut them down afterwards."""
    created = []

    def _make(router, **kwargs):
        kwargs.setdefault("step_timeout", 5.0)
        kwargs.setdefault("poll_interval", 0.01)
        executor = ChainExecutor(chain_store, checkpoint_store, router, **kwargs)
        created.append(executor)
        return executor

    yield _make
    for executor in created:
        executor.shutdown(wait=False)
