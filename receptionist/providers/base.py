"""Provider contract shared by every LLM vendor integration.

Every concrete provider issues exactly one vendor request per
``generate_response`` call and reports failures as :class:`ProviderError`
so the fallback chain in :mod:`receptionist.providers.factory` can decide
whether to move on to the next configured provider.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from pydantic import BaseModel, Field

from receptionist.models import ProviderConfig
from receptionist.prompts import with_knowledge
from receptionist.services.metrics import metrics

logger = logging.getLogger(__name__)


class ProviderError(Exception):
    """A vendor call failed.

    ``retryable`` tells the fallback chain whether trying the next provider
    makes sense (rate limits, timeouts, 5xx) or whether the whole chain
    should stop (bad credentials, bad configuration).
    """

    def __init__(
        self,
        message: str,
        provider: str,
        status_code: int | None = None,
        retryable: bool = False,
    ):
        self.provider = provider
        self.status_code = status_code
        self.retryable = retryable
        super().__init__(message)


class ProviderConfigError(ProviderError):
    """Invalid or unsupported provider configuration.  Never retried."""

    def __init__(self, message: str, provider: str):
        super().__init__(message, provider, status_code=None, retryable=False)


class AllProvidersFailedError(ProviderError):
    """Every provider in a fallback chain failed with a retryable error."""

    def __init__(self, attempts: list[tuple[str, str]]):
        self.attempts = attempts
        summary = "; ".join(f"{name}: {msg}" for name, msg in attempts)
        super().__init__(f"All providers failed. {summary}", "factory", retryable=False)


class GenerationRequest(BaseModel):
    """Everything a provider needs to produce one reply."""

    messages: list[dict[str, str]]
    system_prompt: str = ""
    max_tokens: int = 1000
    temperature: float = 0.7
    knowledge_context: list[str] = Field(default_factory=list)


class AIProvider(ABC):
    """Capability contract implemented by every vendor."""

    @abstractmethod
    async def generate_response(self, request: GenerationRequest) -> str: ...

    @abstractmethod
    def validate_config(self) -> bool: ...

    @abstractmethod
    def get_provider_name(self) -> str: ...

    @abstractmethod
    def estimate_cost(self, tokens: int) -> float: ...

    async def aclose(self) -> None:
        """Release network resources.  No-op unless the vendor holds a pool."""


class BaseAIProvider(AIProvider):
    """Shared prompt building, error classification and metrics."""

    #: USD per 1 000 tokens, overridden per vendor.
    cost_per_1k_tokens: float = 0.0

    def __init__(self, config: ProviderConfig) -> None:
        self.config = config

    def estimate_cost(self, tokens: int) -> float:
        return (tokens / 1000) * self.cost_per_1k_tokens

    # ── Prompt assembly ──────────────────────────────────────────────

    @staticmethod
    def enhance_system_prompt(system_prompt: str, knowledge_context: list[str] | None) -> str:
        return with_knowledge(system_prompt, knowledge_context)

    def build_messages(self, request: GenerationRequest) -> list[dict[str, str]]:
        """Enhanced system message followed by the non-system conversation."""
        system_prompt = request.system_prompt
        if not system_prompt:
            # Fall back to the system message rendered by the context manager.
            system_prompt = next(
                (m["content"] for m in request.messages if m["role"] == "system"), "",
            )
        enhanced = self.enhance_system_prompt(system_prompt, request.knowledge_context)
        return [
            {"role": "system", "content": enhanced},
            *(m for m in request.messages if m["role"] != "system"),
        ]

    # ── Error classification ─────────────────────────────────────────

    def classify_status(self, status_code: int, detail: str = "") -> ProviderError:
        """Map a vendor HTTP status to a :class:`ProviderError`."""
        name = self.get_provider_name()
        if status_code == 429:
            return ProviderError("Rate limit exceeded", name, 429, retryable=True)
        if status_code in (401, 403):
            return ProviderError("Invalid API key", name, status_code, retryable=False)
        if status_code >= 500:
            return ProviderError(
                f"Server error {status_code}", name, status_code, retryable=True,
            )
        return ProviderError(
            f"Client error {status_code}: {detail[:200]}".rstrip(": "),
            name, status_code, retryable=False,
        )

    def timeout_error(self) -> ProviderError:
        return ProviderError("Request timeout", self.get_provider_name(), retryable=True)

    def connection_error(self, exc: Exception) -> ProviderError:
        return ProviderError(
            f"Connection failed: {type(exc).__name__}",
            self.get_provider_name(),
            retryable=True,
        )

    def empty_response_error(self) -> ProviderError:
        return ProviderError("Empty response", self.get_provider_name(), retryable=True)

    # ── Metrics ──────────────────────────────────────────────────────

    def record_success(self, tokens: int, latency_ms: float) -> None:
        cost = self.estimate_cost(tokens)
        metrics.record_success(
            self.config.provider, "generate",
            latency_ms=latency_ms, tokens=tokens, cost=cost,
        )
        logger.info(
            "%s (%s) replied: tokens=%d latency=%.0fms cost=$%.6f",
            self.get_provider_name(), self.config.model, tokens, latency_ms, cost,
        )

    def record_failure(self, error: ProviderError, latency_ms: float) -> None:
        error_type = str(error.status_code) if error.status_code else "timeout_or_network"
        metrics.record_failure(
            self.config.provider, "generate",
            error_type=error_type, latency_ms=latency_ms,
        )
        logger.warning(
            "%s (%s) failed after %.0fms: %s (retryable=%s)",
            self.get_provider_name(), self.config.model, latency_ms, error, error.retryable,
        )
