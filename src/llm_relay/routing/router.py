"""
Provider routing between direct user-key clients and the subscription gateway.

Every response leaving the router is tagged with ``provider``, ``routed_via``
and ``billed_to`` so callers can meter usage without knowing the routing rules.
"""

import logging
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Mapping

from ..clients.base import DirectClient
from ..clients.gateway_client import GATEWAY_PROVIDER, SubscriptionGatewayClient
from ..errors import ProviderError, ProviderUnavailableError, RunCancelledError
from ..models.chat import BillingTarget, ChatRequest, ChatResponse, RoutingStrategy
from ..utils.cancellation import CallContext
from .resolver import ProviderResolver

logger = logging.getLogger(__name__)

USER_PROVIDER_PREFIX = "user_"


@dataclass
class KeyUsage:
    """Usage record for one provider's user key."""
    enabled: bool = True
    usage_count: int = 0
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    last_used_at: datetime | None = None

    def to_dict(self) -> dict:
        return {
            "enabled": self.enabled,
            "usage_count": self.usage_count,
            "created_at": self.created_at.isoformat(),
            "last_used_at": self.last_used_at.isoformat() if self.last_used_at else None,
        }


class ProviderRouter:
    """Routes chat requests according to a per-request strategy."""

    def __init__(
        self,
        gateway: SubscriptionGatewayClient | None,
        direct_clients: Mapping[str, DirectClient] | None = None,
        resolver: ProviderResolver | None = None,
    ):
        self.gateway = gateway
        self.resolver = resolver or ProviderResolver()
        self._lock = threading.Lock()
        self._direct_clients: dict[str, DirectClient] = {}
        self._usage: dict[str, KeyUsage] = {}
        self.update_direct_clients(direct_clients or {})

    # -------------------------------------------------------------------------
    # Routing
    # -------------------------------------------------------------------------

    def chat(self, request: ChatRequest, ctx: CallContext | None = None) -> ChatResponse:
        """Route ``request`` and return a tagged response.

        Raises:
            ProviderUnavailableError: The strategy needs a client that is not configured.
            ProviderError: The chosen provider(s) failed.
            RunCancelledError: ``ctx`` was cancelled.
        """
        ctx = ctx or CallContext()
        if request.force_provider:
            return self._route_forced(request, ctx, request.force_provider)

        strategy = request.strategy
        if strategy == RoutingStrategy.SUBSCRIPTION:
            return self._route_subscription(request, ctx)
        if strategy == RoutingStrategy.USER_KEY_ONLY:
            return self._route_user_key_only(request, ctx)
        if strategy == RoutingStrategy.COST_OPTIMIZED:
            return self._route_cost_optimized(request, ctx)
        if strategy == RoutingStrategy.BALANCED:
            return self._route_balanced(request, ctx)
        if strategy == RoutingStrategy.FORCE_PROVIDER:
            raise ProviderUnavailableError("force_provider strategy requires a provider identifier")
        return self._route_user_key_first(request, ctx)

    def _route_user_key_first(self, request: ChatRequest, ctx: CallContext) -> ChatResponse:
        provider = self.resolver.resolve(request.model)
        client = self._client_for(provider)
        if client is not None:
            logger.debug(f"Routing {request.model} to user API key ({provider})")
            try:
                return self._call_direct(provider, client, request, ctx, RoutingStrategy.USER_KEY_FIRST.value)
            except RunCancelledError:
                raise
            except Exception as e:
                logger.warning(f"User key for {provider} failed, falling back to subscription: {e}")
        return self._route_subscription(request, ctx)

    def _route_subscription(self, request: ChatRequest, ctx: CallContext) -> ChatResponse:
        if self.gateway is None:
            raise ProviderUnavailableError("subscription gateway is not configured")
        ctx.check()
        provider = self.resolver.resolve(request.model)
        logger.debug(f"Routing {request.model} to subscription gateway ({provider})")
        response = self.gateway.chat(request, ctx, provider=provider)
        return response.tagged(GATEWAY_PROVIDER, RoutingStrategy.SUBSCRIPTION.value, BillingTarget.SUBSCRIPTION)

    def _route_user_key_only(self, request: ChatRequest, ctx: CallContext,
                             routed_via: str = RoutingStrategy.USER_KEY_ONLY.value) -> ChatResponse:
        provider = self.resolver.resolve(request.model)
        client = self._client_for(provider)
        if client is None:
            raise ProviderUnavailableError(f"user API key for {provider} not configured")
        return self._call_direct(provider, client, request, ctx, routed_via)

    def _route_cost_optimized(self, request: ChatRequest, ctx: CallContext) -> ChatResponse:
        # A user's own key is treated as cheaper for the user than the subscription
        provider = self.resolver.resolve(request.model)
        if self._client_for(provider) is not None:
            logger.debug(f"Cost optimization: using user key for {provider}")
            return self._route_user_key_only(request, ctx, RoutingStrategy.COST_OPTIMIZED.value)
        return self._route_subscription(request, ctx)

    def _route_balanced(self, request: ChatRequest, ctx: CallContext) -> ChatResponse:
        provider = self.resolver.resolve(request.model)
        with self._lock:
            usage = self._usage.get(provider)
            count = usage.usage_count if usage else None
        if count is not None and self._client_for(provider) is not None and count % 2 == 0:
            return self._route_user_key_only(request, ctx, RoutingStrategy.BALANCED.value)
        return self._route_subscription(request, ctx)

    def _route_forced(self, request: ChatRequest, ctx: CallContext, force_provider: str) -> ChatResponse:
        if force_provider == GATEWAY_PROVIDER:
            return self._route_subscription(request, ctx)

        provider = force_provider
        if provider.startswith(USER_PROVIDER_PREFIX):
            provider = provider[len(USER_PROVIDER_PREFIX):]
        client = self._client_for(provider)
        if client is None:
            raise ProviderUnavailableError(f"forced provider {force_provider} not available")
        return self._call_direct(provider, client, request, ctx, "forced")

    def _call_direct(self, provider: str, client: DirectClient, request: ChatRequest,
                     ctx: CallContext, routed_via: str) -> ChatResponse:
        ctx.check()
        try:
            response = client.chat(request, ctx)
        except (ProviderError, RunCancelledError):
            raise
        except Exception as e:
            raise ProviderError(f"user key request to {provider} failed: {e}") from e
        # An abandoned call does not count as usage
        ctx.check()
        self._record_usage(provider)
        return response.tagged(f"{USER_PROVIDER_PREFIX}{provider}", routed_via, BillingTarget.USER_KEY)

    # -------------------------------------------------------------------------
    # Key management and stats
    # -------------------------------------------------------------------------

    def _client_for(self, provider: str) -> DirectClient | None:
        with self._lock:
            usage = self._usage.get(provider)
            if usage is not None and not usage.enabled:
                return None
            return self._direct_clients.get(provider)

    def _record_usage(self, provider: str) -> None:
        with self._lock:
            usage = self._usage.setdefault(provider, KeyUsage())
            usage.usage_count += 1
            usage.last_used_at = datetime.now(timezone.utc)
            count = usage.usage_count
        logger.debug(f"Updated key usage for {provider}: count={count}")

    def update_direct_clients(self, clients: Mapping[str, DirectClient]) -> None:
        """Replace the configured direct clients.

        Usage records survive for providers that stay configured.
        """
        with self._lock:
            self._direct_clients = dict(clients)
            self._usage = {
                provider: self._usage.get(provider, KeyUsage())
                for provider in self._direct_clients
            }
        logger.info(f"User API keys updated: {', '.join(sorted(clients)) or 'none'}")

    def set_key_enabled(self, provider: str, enabled: bool) -> None:
        with self._lock:
            if provider not in self._usage:
                raise ProviderUnavailableError(f"user API key for {provider} not configured")
            self._usage[provider].enabled = enabled

    def configured_providers(self) -> list[str]:
        with self._lock:
            return sorted(self._direct_clients)

    def available_models(self) -> dict[str, list[dict[str, Any]]]:
        """Models reachable through the subscription and through user keys."""
        subscription = []
        if self.gateway is not None:
            subscription = [
                {"name": name, "provider": GATEWAY_PROVIDER, "available": True}
                for name in self.gateway.get_models()
            ]
        with self._lock:
            clients = sorted(self._direct_clients.items())
        user_keys = [
            {"name": name, "provider": f"{USER_PROVIDER_PREFIX}{provider}", "available": True}
            for provider, client in clients
            for name in client.get_models()
        ]
        return {"subscription": subscription, "user_keys": user_keys}

    def validate_user_keys(self) -> dict[str, str | None]:
        """Check every configured key. Maps provider to an error message or None."""
        with self._lock:
            clients = sorted(self._direct_clients.items())
        results: dict[str, str | None] = {}
        for provider, client in clients:
            try:
                client.validate_key()
                results[provider] = None
                logger.debug(f"User key validation successful for {provider}")
            except ProviderError as e:
                results[provider] = str(e)
                logger.error(f"User key validation failed for {provider}: {e}")
        return results

    def usage_stats(self) -> dict[str, KeyUsage]:
        """Snapshot of per-provider key usage."""
        with self._lock:
            return {provider: replace(usage) for provider, usage in self._usage.items()}
