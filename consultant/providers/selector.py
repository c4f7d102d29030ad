"""Provider selection with fallback.

The selector turns the configured preference order into a live provider
adapter for one chat request. Selection is a function of configuration and
an availability probe; nothing about the chosen provider is remembered
between requests except, optionally, probe results for a bounded TTL.
"""

import logging
import time
from typing import Callable, Dict, List, Mapping, Optional, Tuple

from consultant.config import ProviderConfig, Settings
from consultant.core.errors import ConfigurationError, NoProviderAvailable
from consultant.providers.base import ProviderAdapter
from consultant.utils.log_utils import sanitize_log_message

logger = logging.getLogger(__name__)

AdapterFactory = Callable[[ProviderConfig], ProviderAdapter]


def default_factories() -> Dict[str, AdapterFactory]:
    """Adapter factories for every supported provider.

    SDK modules are imported lazily so a deployment only needs the SDKs of
    the providers it actually configures.
    """
    def _claude(config: ProviderConfig) -> ProviderAdapter:
        from consultant.providers.anthropic import AnthropicAdapter
        return AnthropicAdapter(config)

    def _openai(config: ProviderConfig) -> ProviderAdapter:
        from consultant.providers.openai import OpenAIAdapter
        return OpenAIAdapter(config)

    def _gemini(config: ProviderConfig) -> ProviderAdapter:
        from consultant.providers.gemini import GeminiAdapter
        return GeminiAdapter(config)

    return {
        "claude": _claude,
        "openai": _openai,
        "deepseek": _openai,
        "gemini": _gemini,
    }


class ProviderSelector:
    """Chooses an available provider adapter from the configured preference.

    Args:
        settings: Service settings holding the preference order and credentials
        factories: Provider name to adapter factory; defaults to
            ``default_factories()``
        clock: Monotonic clock, injectable for tests of the TTL cache
    """

    def __init__(
        self,
        settings: Settings,
        factories: Optional[Mapping[str, AdapterFactory]] = None,
        clock: Callable[[], float] = time.monotonic
    ) -> None:
        self._settings = settings
        self._factories = dict(factories) if factories is not None else default_factories()
        self._clock = clock
        self._probe_cache: Dict[str, Tuple[bool, float]] = {}

    @property
    def preference(self) -> List[str]:
        return self._settings.provider_preference

    def configured_providers(self) -> List[str]:
        """Providers in preference order that have credentials configured."""
        configured = []
        for name in self.preference:
            if name not in self._factories:
                continue
            try:
                config = ProviderConfig.from_settings(name, self._settings)
            except ConfigurationError:
                continue
            if config.is_configured:
                configured.append(name)
        return configured

    async def create(self) -> ProviderAdapter:
        """Create the first available provider adapter.

        Tries the primary provider, then each fallback in order. Construction
        failures and failed probes move on to the next candidate.

        Returns:
            An adapter whose availability probe succeeded

        Raises:
            NoProviderAvailable: If no candidate is available
        """
        start_time = time.time()
        tried: List[str] = []

        for position, name in enumerate(self.preference):
            tried.append(name)
            adapter = self._build(name)
            if adapter is None:
                continue

            if await self._probe(name, adapter):
                logger.info("Provider selected", extra={
                    "provider": name,
                    "fallback": position > 0,
                    "duration_ms": int((time.time() - start_time) * 1000)
                })
                return adapter

            logger.warning("Provider unavailable, trying fallback", extra={"provider": name})

        logger.error("No provider available", extra={
            "tried": tried,
            "duration_ms": int((time.time() - start_time) * 1000)
        })
        raise NoProviderAvailable(tried)

    def _build(self, name: str) -> Optional[ProviderAdapter]:
        factory = self._factories.get(name)
        if factory is None:
            logger.warning("Unknown provider in preference list", extra={"provider": name})
            return None
        try:
            return factory(ProviderConfig.from_settings(name, self._settings))
        except Exception as e:
            logger.error("Failed to create provider", extra={
                "provider": name,
                "error": sanitize_log_message(str(e))
            })
            return None

    async def _probe(self, name: str, adapter: ProviderAdapter) -> bool:
        ttl = self._settings.availability_ttl
        now = self._clock()

        if ttl > 0 and name in self._probe_cache:
            available, checked_at = self._probe_cache[name]
            if now - checked_at < ttl:
                return available

        try:
            available = bool(await adapter.is_available())
        except Exception as e:
            logger.warning("Availability probe raised", extra={
                "provider": name,
                "error": sanitize_log_message(str(e))
            })
            available = False

        if ttl > 0:
            self._probe_cache[name] = (available, now)
        return available
