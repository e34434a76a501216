"""Build provider clients and the router from a Config."""

import logging
from typing import Dict, Type

from ..routing.resolver import ProviderResolver
from ..routing.router import ProviderRouter
from ..utils.config import Config, PROVIDER_ANTHROPIC, PROVIDER_DEEPSEEK, PROVIDER_GROK, PROVIDER_OPENAI
from .anthropic_client import AnthropicClient
from .base import DirectClient
from .gateway_client import SubscriptionGatewayClient
from .openai_client import DeepSeekClient, GrokClient, OpenAIClient

logger = logging.getLogger(__name__)

CLIENT_CLASSES: Dict[str, Type[DirectClient]] = {
    PROVIDER_OPENAI: OpenAIClient,
    PROVIDER_ANTHROPIC: AnthropicClient,
    PROVIDER_DEEPSEEK: DeepSeekClient,
    PROVIDER_GROK: GrokClient,
}


def build_direct_clients(config: Config) -> Dict[str, DirectClient]:
    """One direct client per provider that has an API key configured."""
    clients: Dict[str, DirectClient] = {}
    for provider, key_config in config.user_api_keys().items():
        client_cls = CLIENT_CLASSES.get(provider)
        if client_cls is None:
            logger.warning(f"No direct client for provider '{provider}'")
            continue
        clients[provider] = client_cls(
            key_config["api_key"],
            base_url=key_config.get("base_url"),
            default_max_tokens=config.DEFAULT_MAX_TOKENS,
        )
        logger.debug(f"Direct client ready for {provider}")
    return clients


def build_gateway_client(config: Config) -> SubscriptionGatewayClient | None:
    if not config.GATEWAY_TOKEN:
        logger.info("No gateway token configured; subscription routing disabled")
        return None
    return SubscriptionGatewayClient(
        config.GATEWAY_URL,
        config.GATEWAY_TOKEN,
        user_id=config.USER_ID,
        timeout=config.STEP_TIMEOUT,
    )


def build_router(config: Config) -> ProviderRouter:
    return ProviderRouter(
        gateway=build_gateway_client(config),
        direct_clients=build_direct_clients(config),
        resolver=ProviderResolver.from_config(config),
    )
