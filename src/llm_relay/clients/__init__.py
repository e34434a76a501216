from .base import DirectClient
from .openai_client import OpenAIClient, DeepSeekClient, GrokClient
from .anthropic_client import AnthropicClient
from .gateway_client import SubscriptionGatewayClient

__all__ = [
    'DirectClient',
    'OpenAIClient',
    'DeepSeekClient',
    'GrokClient',
    'AnthropicClient',
    'SubscriptionGatewayClient',
]
