"""Provider construction, caching and ordered fallback.

The factory is an ordinary object owned by the engine (or shared by several
engines), not a process-wide singleton, so tests get a fresh cache simply
by building a new factory.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from enum import StrEnum

from receptionist.models import ProviderConfig
from receptionist.providers.anthropic_provider import AnthropicProvider
from receptionist.providers.base import (
    AIProvider,
    AllProvidersFailedError,
    GenerationRequest,
    ProviderConfigError,
    ProviderError,
)
from receptionist.providers.openai_provider import DeepSeekProvider, OpenAIProvider
from receptionist.services.cache import LRUCache

logger = logging.getLogger(__name__)

ProviderConstructor = Callable[[ProviderConfig], AIProvider]


class ProviderKind(StrEnum):
    OPENAI = "openai"
    DEEPSEEK = "deepseek"
    ANTHROPIC = "anthropic"


DEFAULT_REGISTRY: dict[ProviderKind, ProviderConstructor] = {
    ProviderKind.OPENAI: OpenAIProvider,
    ProviderKind.DEEPSEEK: DeepSeekProvider,
    ProviderKind.ANTHROPIC: AnthropicProvider,
}


class ProviderFactory:
    """Builds providers on demand and caches them by ``(provider, model)``."""

    def __init__(
        self,
        registry: dict[ProviderKind, ProviderConstructor] | None = None,
        *,
        cache: LRUCache | None = None,
    ) -> None:
        self._registry = dict(DEFAULT_REGISTRY if registry is None else registry)
        self._cache = cache if cache is not None else LRUCache()
        self._cache.on_evict = self._retire
        # Providers dropped from the cache whose clients still need closing.
        self._retired: list[AIProvider] = []

    # ── Construction ─────────────────────────────────────────────────

    def create_provider(self, config: ProviderConfig) -> AIProvider:
        """Return the cached provider for *config*, building it on a miss.

        Raises:
            ProviderConfigError: unknown provider kind or a config that fails
                the provider's own validation.  Invalid providers are never
                cached.
        """
        cached = self._cache.get(config.cache_key)
        if cached is not None:
            return cached

        try:
            kind = ProviderKind(config.provider)
        except ValueError:
            raise ProviderConfigError(
                f"Unsupported provider: {config.provider}", "factory",
            ) from None

        constructor = self._registry.get(kind)
        if constructor is None:
            raise ProviderConfigError(f"No constructor registered for {kind}", "factory")

        provider = constructor(config)
        if not provider.validate_config():
            raise ProviderConfigError(
                f"Invalid configuration for {provider.get_provider_name()}", config.provider,
            )

        provider = self._cache.put_if_absent(config.cache_key, provider)
        logger.info("Created %s provider (%s)", provider.get_provider_name(), config.model)
        return provider

    async def clear_cache(self) -> None:
        """Drop every cached provider and close its client."""
        self._cache.clear()
        await self.close_retired()
        logger.info("Provider cache cleared")

    @property
    def cached_count(self) -> int:
        return self._cache.entry_count

    # ── Cleanup ──────────────────────────────────────────────────────

    def _retire(self, key: tuple[str, str], provider: AIProvider) -> None:
        logger.debug("Retiring provider %s", key)
        self._retired.append(provider)

    async def close_retired(self) -> int:
        """Close providers that have left the cache.  Returns how many."""
        retired, self._retired = self._retired, []
        for provider in retired:
            try:
                await provider.aclose()
            except Exception:
                logger.exception("Failed to close %s provider", provider.get_provider_name())
        return len(retired)

    async def aclose(self) -> None:
        """Close every provider, cached or retired.  Called at shutdown."""
        await self.clear_cache()

    # ── Fallback chain ───────────────────────────────────────────────

    async def generate_with_fallback(
        self,
        configs: Sequence[ProviderConfig],
        request: GenerationRequest,
    ) -> str:
        """Try each config in order and return the first successful reply.

        A non-retryable :class:`ProviderError` stops the chain immediately
        and is re-raised.  Any other failure is recorded and the next config
        is tried.  If every config fails, :class:`AllProvidersFailedError`
        summarises each attempt.
        """
        if not configs:
            raise ProviderConfigError("No provider configurations provided", "factory")

        attempts: list[tuple[str, str]] = []
        total = len(configs)

        for index, config in enumerate(configs, start=1):
            try:
                provider = self.create_provider(config)
                if self._retired:
                    await self.close_retired()
                logger.info(
                    "Attempting %s (%d/%d)", provider.get_provider_name(), index, total,
                )
                reply = await provider.generate_response(request)
                logger.info("Reply generated by %s", provider.get_provider_name())
                return reply
            except ProviderError as exc:
                attempts.append((config.provider, str(exc)))
                logger.warning(
                    "%s failed (%d/%d): %s", config.provider, index, total, exc,
                )
                if not exc.retryable:
                    raise
            except Exception as exc:
                attempts.append((config.provider, str(exc) or type(exc).__name__))
                logger.warning(
                    "%s failed unexpectedly (%d/%d): %s",
                    config.provider, index, total, type(exc).__name__,
                )

        raise AllProvidersFailedError(attempts)
