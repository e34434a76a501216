from .resolver import DEFAULT_MODEL_PROVIDERS, ProviderResolver
from .router import KeyUsage, ProviderRouter

__all__ = ['DEFAULT_MODEL_PROVIDERS', 'KeyUsage', 'ProviderResolver', 'ProviderRouter']
