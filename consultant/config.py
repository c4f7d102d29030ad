"""Service configuration module.

This module provides configuration management for the chat core and its
LLM providers, with support for reading from environment variables and an
optional ``.env`` file.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional, get_args

from pydantic import ConfigDict, Field
from pydantic_settings import BaseSettings

from consultant.core.errors import ConfigurationError


ProviderType = Literal["claude", "openai", "deepseek", "gemini"]
SUPPORTED_PROVIDERS = get_args(ProviderType)


class Settings(BaseSettings):
    """Global settings for the chat service.

    Provider preference is expressed as a primary provider plus an ordered,
    comma separated fallback list, e.g. ``AI_PROVIDER=gemini`` and
    ``AI_FALLBACK_PROVIDERS=claude,deepseek``.
    """

    # Provider selection
    ai_provider: str = Field("gemini", description="Primary provider name")
    ai_fallback_providers: str = Field("", description="Comma separated fallback providers")
    availability_ttl: float = Field(0.0, description="Seconds to cache availability probes; 0 disables")

    # Anthropic settings
    anthropic_api_key: Optional[str] = Field(None, description="Anthropic API key")
    claude_model: str = Field("claude-sonnet-4-20250514", description="Default Claude model")

    # OpenAI settings
    openai_api_key: Optional[str] = Field(None, description="OpenAI API key")
    openai_model: str = Field("gpt-4o", description="Default OpenAI model")
    openai_base_url: Optional[str] = Field(None, description="Optional OpenAI API base URL")

    # DeepSeek settings (OpenAI-compatible API)
    deepseek_api_key: Optional[str] = Field(None, description="DeepSeek API key")
    deepseek_model: str = Field("deepseek-chat", description="Default DeepSeek model")
    deepseek_base_url: str = Field("https://api.deepseek.com", description="DeepSeek API base URL")

    # Gemini settings
    gemini_api_key: Optional[str] = Field(None, description="Google Gemini API key")
    gemini_model: str = Field("gemini-2.5-flash", description="Default Gemini model")

    # Agent loop settings
    max_agent_iterations: int = Field(10, ge=1, description="Cap on tool-executing rounds")
    max_tokens: int = Field(4096, ge=1, description="Max output tokens per provider turn")
    provider_timeout: float = Field(60.0, gt=0, description="Deadline for one provider turn, seconds")
    tool_timeout: float = Field(30.0, gt=0, description="Deadline for one tool call, seconds")
    history_limit: int = Field(20, ge=0, description="Persisted messages loaded as context")

    # Logging
    log_level: str = Field("INFO", description="Root log level")
    log_dir: Optional[str] = Field(None, description="Directory for rotating log files")

    def __init__(self, env_file: Optional[str] = ".env", **kwargs):
        super().__init__(_env_file=env_file, **kwargs)

    model_config = ConfigDict(
        case_sensitive=False,
        extra="ignore"
    )

    @property
    def fallback_providers(self) -> List[str]:
        """Fallback provider names in preference order."""
        return [
            name.strip().lower()
            for name in self.ai_fallback_providers.split(",")
            if name.strip()
        ]

    @property
    def provider_preference(self) -> List[str]:
        """Primary provider followed by fallbacks, without duplicates."""
        ordered: List[str] = []
        for name in [self.ai_provider.strip().lower(), *self.fallback_providers]:
            if name and name not in ordered:
                ordered.append(name)
        return ordered


@dataclass
class ProviderConfig:
    """Configuration for a specific LLM provider instance.

    This class holds the configuration for a specific provider instance,
    extracted from the global settings.

    Attributes:
        name: The provider name
        api_key: The API key for the provider
        model: The model name to use
        base_url: Optional base URL for the API
        max_tokens: Max output tokens per turn
        extra_config: Additional provider-specific configuration
    """

    name: str
    api_key: Optional[str] = None
    model: Optional[str] = None
    base_url: Optional[str] = None
    max_tokens: int = 4096
    extra_config: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_settings(cls, provider: str, settings: Optional[Settings] = None) -> "ProviderConfig":
        """Create a provider config from settings.

        Args:
            provider: The provider to load config for
            settings: Optional settings instance, will load from env if not provided

        Returns:
            A configured ProviderConfig instance

        Raises:
            ConfigurationError: If provider is not supported
        """
        if settings is None:
            settings = Settings()

        provider_configs = {
            "claude": lambda: cls(
                name="claude",
                api_key=settings.anthropic_api_key,
                model=settings.claude_model,
                max_tokens=settings.max_tokens
            ),
            "openai": lambda: cls(
                name="openai",
                api_key=settings.openai_api_key,
                model=settings.openai_model,
                base_url=settings.openai_base_url,
                max_tokens=settings.max_tokens
            ),
            "deepseek": lambda: cls(
                name="deepseek",
                api_key=settings.deepseek_api_key,
                model=settings.deepseek_model,
                base_url=settings.deepseek_base_url,
                max_tokens=settings.max_tokens
            ),
            "gemini": lambda: cls(
                name="gemini",
                api_key=settings.gemini_api_key,
                model=settings.gemini_model,
                max_tokens=settings.max_tokens
            )
        }

        key = provider.lower()
        if key not in provider_configs:
            raise ConfigurationError(f"Unsupported provider: {provider}")

        return provider_configs[key]()

    @property
    def is_configured(self) -> bool:
        """Check if the provider has a model and credentials."""
        return bool(self.model) and bool(self.api_key)

    def require_api_key(self) -> str:
        """Return the API key or fail with a configuration error."""
        if not self.api_key:
            raise ConfigurationError(
                f"Missing API key for provider '{self.name}'. "
                f"Set the matching *_API_KEY environment variable."
            )
        return self.api_key
