import logging
from typing import Mapping

from ..utils.config import PROVIDER_OPENAI

logger = logging.getLogger(__name__)

DEFAULT_MODEL_PROVIDERS: dict[str, str] = {
    "gpt-4": "openai",
    "gpt-4o": "openai",
    "gpt-3.5-turbo": "openai",
    "claude-3-5-sonnet": "anthropic",
    "claude-3-opus": "anthropic",
    "deepseek-chat": "deepseek",
    "deepseek-reasoner": "deepseek",
    "grok-beta": "grok",
}


class ProviderResolver:
    """Maps a model name to a provider by exact match.

    Names missing from the table resolve to ``default_provider``.
    """

    def __init__(self, table: Mapping[str, str] | None = None, default_provider: str = PROVIDER_OPENAI):
        self.table = dict(DEFAULT_MODEL_PROVIDERS if table is None else table)
        self.default_provider = default_provider

    @classmethod
    def from_config(cls, config) -> "ProviderResolver":
        """Built-in table overlaid with the config's ``models`` mapping."""
        table = dict(DEFAULT_MODEL_PROVIDERS)
        table.update(config.model_providers)
        return cls(table, default_provider=config.DEFAULT_PROVIDER)

    def resolve(self, model_name: str) -> str:
        provider = self.table.get(model_name)
        if provider is None:
            logger.debug(f"Model '{model_name}' not mapped, using default provider '{self.default_provider}'")
            return self.default_provider
        return provider

    def is_mapped(self, model_name: str) -> bool:
        return model_name in self.table
