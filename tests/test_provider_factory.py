"""Tests for provider construction, caching and the fallback chain."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from receptionist.models import ProviderConfig
from receptionist.providers.base import (
    AllProvidersFailedError,
    GenerationRequest,
    ProviderConfigError,
    ProviderError,
)
from receptionist.providers.factory import ProviderFactory, ProviderKind
from receptionist.providers.openai_provider import DeepSeekProvider
from receptionist.services.cache import LRUCache

# ── Helpers ──────────────────────────────────────────────────────────

REQUEST = GenerationRequest(messages=[{"role": "user", "content": "hola"}])


def _config(provider: str = "deepseek", model: str = "deepseek-chat") -> ProviderConfig:
    return ProviderConfig(provider=provider, model=model, api_key="sk-test")


def _fake_provider(name: str, *, reply: str | None = None, error: Exception | None = None) -> MagicMock:
    provider = MagicMock()
    provider.get_provider_name.return_value = name
    provider.validate_config.return_value = True
    provider.generate_response = AsyncMock(return_value=reply, side_effect=error)
    provider.aclose = AsyncMock()
    return provider


def _factory(**providers: MagicMock) -> ProviderFactory:
    """Factory whose registry hands out the given fakes by provider kind."""
    registry = {
        ProviderKind(kind): (lambda config, p=p: p)
        for kind, p in providers.items()
    }
    return ProviderFactory(registry)


# ── Construction & cache ─────────────────────────────────────────────


class TestCreateProvider:
    def test_builds_real_provider_for_kind(self):
        provider = ProviderFactory().create_provider(_config())
        assert isinstance(provider, DeepSeekProvider)

    def test_same_provider_and_model_is_cached(self):
        factory = ProviderFactory()
        first = factory.create_provider(_config())
        second = factory.create_provider(_config())
        assert first is second
        assert factory.cached_count == 1

    def test_different_model_gets_new_instance(self):
        factory = ProviderFactory()
        factory.create_provider(_config(model="deepseek-chat"))
        factory.create_provider(_config(model="deepseek-reasoner"))
        assert factory.cached_count == 2

    def test_invalid_config_is_rejected_and_not_cached(self):
        factory = ProviderFactory()
        bad = ProviderConfig(provider="deepseek", model="deepseek-chat", api_key="not-a-key")
        with pytest.raises(ProviderConfigError):
            factory.create_provider(bad)
        assert factory.cached_count == 0

    def test_missing_constructor_is_config_error(self):
        factory = ProviderFactory({})
        with pytest.raises(ProviderConfigError):
            factory.create_provider(_config())

    async def test_clear_cache(self):
        factory = ProviderFactory()
        factory.create_provider(_config())
        await factory.clear_cache()
        assert factory.cached_count == 0


# ── Fallback chain ───────────────────────────────────────────────────


class TestGenerateWithFallback:
    async def test_first_provider_success(self):
        primary = _fake_provider("DeepSeek", reply="hi from deepseek")
        fallback = _fake_provider("OpenAI", reply="hi from openai")
        factory = _factory(deepseek=primary, openai=fallback)

        reply = await factory.generate_with_fallback(
            [_config("deepseek"), _config("openai", "gpt-4o-mini")], REQUEST,
        )

        assert reply == "hi from deepseek"
        fallback.generate_response.assert_not_called()

    async def test_retryable_failure_moves_to_next(self):
        primary = _fake_provider(
            "DeepSeek", error=ProviderError("Rate limit exceeded", "DeepSeek", 429, retryable=True),
        )
        fallback = _fake_provider("OpenAI", reply="hi from openai")
        factory = _factory(deepseek=primary, openai=fallback)

        reply = await factory.generate_with_fallback(
            [_config("deepseek"), _config("openai", "gpt-4o-mini")], REQUEST,
        )

        assert reply == "hi from openai"
        primary.generate_response.assert_awaited_once()
        fallback.generate_response.assert_awaited_once()

    async def test_non_retryable_failure_stops_chain(self):
        primary = _fake_provider(
            "DeepSeek", error=ProviderError("Invalid API key", "DeepSeek", 401, retryable=False),
        )
        fallback = _fake_provider("OpenAI", reply="hi from openai")
        factory = _factory(deepseek=primary, openai=fallback)

        with pytest.raises(ProviderError, match="Invalid API key"):
            await factory.generate_with_fallback(
                [_config("deepseek"), _config("openai", "gpt-4o-mini")], REQUEST,
            )
        fallback.generate_response.assert_not_called()

    async def test_unexpected_exception_is_treated_as_retryable(self):
        primary = _fake_provider("DeepSeek", error=RuntimeError("boom"))
        fallback = _fake_provider("OpenAI", reply="recovered")
        factory = _factory(deepseek=primary, openai=fallback)

        reply = await factory.generate_with_fallback(
            [_config("deepseek"), _config("openai", "gpt-4o-mini")], REQUEST,
        )
        assert reply == "recovered"

    async def test_all_failing_raises_aggregate(self):
        timeout = ProviderError("Request timeout", "x", retryable=True)
        factory = _factory(
            deepseek=_fake_provider("DeepSeek", error=timeout),
            openai=_fake_provider("OpenAI", error=timeout),
        )

        with pytest.raises(AllProvidersFailedError) as exc_info:
            await factory.generate_with_fallback(
                [_config("deepseek"), _config("openai", "gpt-4o-mini")], REQUEST,
            )

        assert [name for name, _ in exc_info.value.attempts] == ["deepseek", "openai"]
        assert str(exc_info.value).startswith("All providers failed.")

    async def test_empty_chain_is_config_error(self):
        with pytest.raises(ProviderConfigError):
            await ProviderFactory().generate_with_fallback([], REQUEST)


# ── Cleanup ──────────────────────────────────────────────────────────


class TestProviderCleanup:
    async def test_clear_cache_closes_http_clients(self):
        factory = ProviderFactory()
        provider = factory.create_provider(_config())

        await factory.clear_cache()

        assert provider._client.is_closed is True

    async def test_evicted_provider_is_closed(self):
        factory = ProviderFactory(cache=LRUCache(max_entries=1))
        first = factory.create_provider(_config("openai", "gpt-4o-mini"))
        second = factory.create_provider(_config("openai", "gpt-4o"))

        assert await factory.close_retired() == 1
        assert first._client.is_closed is True
        assert second._client.is_closed is False
        await factory.aclose()

    async def test_eviction_during_fallback_closes_old_provider(self):
        old = _fake_provider("DeepSeek", reply="old")
        new = _fake_provider("OpenAI", reply="hi from openai")
        factory = ProviderFactory(
            {ProviderKind.DEEPSEEK: lambda config: old, ProviderKind.OPENAI: lambda config: new},
            cache=LRUCache(max_entries=1),
        )
        factory.create_provider(_config("deepseek"))

        reply = await factory.generate_with_fallback([_config("openai", "gpt-4o-mini")], REQUEST)

        assert reply == "hi from openai"
        old.aclose.assert_awaited_once()
        new.aclose.assert_not_called()

    async def test_aclose_closes_cached_providers(self):
        provider = _fake_provider("DeepSeek", reply="hi")
        factory = _factory(deepseek=provider)
        factory.create_provider(_config())

        await factory.aclose()

        provider.aclose.assert_awaited_once()
        assert factory.cached_count == 0

    async def test_close_failure_does_not_stop_others(self):
        broken = _fake_provider("DeepSeek", reply="hi")
        broken.aclose.side_effect = RuntimeError("already closed")
        healthy = _fake_provider("OpenAI", reply="hi")
        factory = _factory(deepseek=broken, openai=healthy)
        factory.create_provider(_config("deepseek"))
        factory.create_provider(_config("openai", "gpt-4o-mini"))

        await factory.clear_cache()

        healthy.aclose.assert_awaited_once()
