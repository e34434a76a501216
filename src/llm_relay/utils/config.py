import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from rich.console import Console

from .chunker import SegmentationMethod

PROVIDER_OPENAI = "openai"
PROVIDER_ANTHROPIC = "anthropic"
PROVIDER_DEEPSEEK = "deepseek"
PROVIDER_GROK = "grok"
DIRECT_PROVIDERS = (PROVIDER_OPENAI, PROVIDER_ANTHROPIC, PROVIDER_DEEPSEEK, PROVIDER_GROK)

logger = logging.getLogger(__name__)
console = Console(stderr=True)


def get_default_providers_yaml_path() -> Path:
    env_path = os.environ.get("LLM_RELAY_PROVIDERS_CONFIG_PATH")
    if env_path:
        return Path(env_path).expanduser().resolve()

    xdg_config_home = os.environ.get("XDG_CONFIG_HOME", os.path.expanduser("~/.config"))
    return Path(xdg_config_home) / "llm-relay" / "providers.yaml"

DEFAULT_PROVIDERS_YAML = get_default_providers_yaml_path()
DOTENV_PATH = DEFAULT_PROVIDERS_YAML.parent / ".env"


class Config(BaseSettings):
    # --- Subscription gateway --- #
    GATEWAY_URL: str = Field(default="http://localhost:8080", description="Base URL of the shared subscription gateway")
    GATEWAY_TOKEN: Optional[str] = Field(default=None, description="Bearer token for the gateway. No token means no subscription fallback")
    USER_ID: str = Field(default="default", description="User id sent to the gateway as X-User-ID")

    # --- Direct (user key) providers --- #
    OPENAI_API_KEY: Optional[str] = Field(default=None)
    OPENAI_BASE_URL: Optional[str] = Field(default=None)
    ANTHROPIC_API_KEY: Optional[str] = Field(default=None)
    ANTHROPIC_BASE_URL: Optional[str] = Field(default=None)
    DEEPSEEK_API_KEY: Optional[str] = Field(default=None)
    DEEPSEEK_BASE_URL: Optional[str] = Field(default=None)
    GROK_API_KEY: Optional[str] = Field(default=None)
    GROK_BASE_URL: Optional[str] = Field(default=None)

    # --- Routing --- #
    DEFAULT_PROVIDER: str = Field(default=PROVIDER_OPENAI, description="Provider used for model names missing from the mapping")
    PROVIDERS_CONFIG_PATH: str = Field(default=str(DEFAULT_PROVIDERS_YAML), description="YAML file with a 'models' mapping of model name to provider")

    # --- Execution --- #
    STEP_TIMEOUT: float = Field(default=60.0, gt=0, description="Seconds allowed for one provider call")
    CANCEL_POLL_INTERVAL: float = Field(default=0.05, gt=0, description="How often a waiting step checks for cancellation")
    MAX_CONCURRENT_CALLS: int = Field(default=16, gt=0, description="Size of the provider call worker pool")
    SEGMENTATION_METHOD: SegmentationMethod = Field(default=SegmentationMethod.SIMPLE, description="How oversized step input is split: simple, semantic or recursive")
    DEFAULT_MAX_TOKENS: int = Field(default=4000, gt=0, description="max_tokens for providers that require one")

    # --- Logging --- #
    VERBOSE: bool = Field(default=False, description="Verbose mode for debugging")
    DEBUG: bool = Field(default=False)

    model_providers: Dict[str, str] = Field(default_factory=dict, exclude=True)

    model_config = SettingsConfigDict(
        env_prefix="LLM_RELAY_",
        env_file=DOTENV_PATH,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra='ignore'
    )

    def __init__(self, **values: Any):
        if 'PROVIDERS_CONFIG_PATH' in values:
            values['PROVIDERS_CONFIG_PATH'] = str(Path(values['PROVIDERS_CONFIG_PATH']).expanduser().resolve())

        super().__init__(**values)
        self._load_providers_config()

    def _load_providers_config(self):
        config_path = Path(self.PROVIDERS_CONFIG_PATH)
        if not config_path.is_file():
            logger.debug(f"No providers file at {config_path}, using built-in model mapping")
            self.model_providers = {}
            return

        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                loaded_data = yaml.safe_load(f)
                if loaded_data is None:
                    loaded_data = {}
            models = loaded_data.get("models") if isinstance(loaded_data, dict) else None
            if not isinstance(models, dict):
                console.print(f"[bold red]Warning:[/bold red] Invalid format in {config_path}. Missing or invalid top-level 'models' mapping. Using built-in mapping.")
                self.model_providers = {}
            else:
                self.model_providers = {str(name): str(provider) for name, provider in models.items()}

        except yaml.YAMLError as e:
            console.print(f"[bold red]Error parsing YAML file {config_path}:[/bold red] {e}")
            self.model_providers = {}
        except OSError as e:
            console.print(f"[bold red]Error loading providers config {config_path}:[/bold red] {e}")
            self.model_providers = {}

    def user_api_keys(self) -> Dict[str, Dict[str, Optional[str]]]:
        """Configured direct provider credentials, keyed by provider name."""
        keys = {}
        for provider in DIRECT_PROVIDERS:
            api_key = getattr(self, f"{provider.upper()}_API_KEY")
            if api_key:
                keys[provider] = {
                    "api_key": api_key,
                    "base_url": getattr(self, f"{provider.upper()}_BASE_URL"),
                }
        return keys
