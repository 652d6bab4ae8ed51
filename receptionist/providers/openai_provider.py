"""OpenAI-compatible chat-completions providers (OpenAI, DeepSeek).

Both vendors expose the same ``POST /chat/completions`` contract, so a
single httpx-based implementation serves both; only the base URL, the key
check and the pricing differ.
"""

from __future__ import annotations

import logging
import time

import httpx

from receptionist.models import ProviderConfig
from receptionist.providers.base import BaseAIProvider, GenerationRequest, ProviderError

logger = logging.getLogger(__name__)

OPENAI_BASE_URL = "https://api.openai.com/v1"
DEEPSEEK_BASE_URL = "https://api.deepseek.com"


class OpenAIProvider(BaseAIProvider):
    """OpenAI chat completions over httpx."""

    default_base_url = OPENAI_BASE_URL
    cost_per_1k_tokens = 0.005

    def __init__(self, config: ProviderConfig, *, client: httpx.AsyncClient | None = None) -> None:
        super().__init__(config)
        self._client = client or httpx.AsyncClient(
            base_url=config.base_url or self.default_base_url,
            headers={
                "Authorization": f"Bearer {config.api_key}",
                "Content-Type": "application/json",
            },
            timeout=config.timeout_seconds,
        )

    def get_provider_name(self) -> str:
        return "OpenAI"

    def validate_config(self) -> bool:
        return bool(self.config.model and self.config.api_key.startswith("sk-"))

    async def generate_response(self, request: GenerationRequest) -> str:
        payload = {
            "model": self.config.model,
            "messages": self.build_messages(request),
            "max_tokens": request.max_tokens,
            "temperature": request.temperature,
        }
        t0 = time.perf_counter()
        try:
            response = await self._client.post("/chat/completions", json=payload)
            if response.status_code >= 400:
                raise self.classify_status(response.status_code, response.text)

            data = response.json()
            content = (data["choices"][0]["message"].get("content") or "").strip()
            if not content:
                raise self.empty_response_error()

        except ProviderError as exc:
            self.record_failure(exc, (time.perf_counter() - t0) * 1000)
            raise
        except httpx.TimeoutException as exc:
            error = self.timeout_error()
            self.record_failure(error, (time.perf_counter() - t0) * 1000)
            raise error from exc
        except httpx.TransportError as exc:
            error = self.connection_error(exc)
            self.record_failure(error, (time.perf_counter() - t0) * 1000)
            raise error from exc
        except (KeyError, IndexError, TypeError, ValueError) as exc:
            error = ProviderError(
                "Malformed completion payload", self.get_provider_name(),
                response.status_code, retryable=True,
            )
            self.record_failure(error, (time.perf_counter() - t0) * 1000)
            raise error from exc

        usage = data.get("usage") or {}
        self.record_success(int(usage.get("total_tokens", 0)), (time.perf_counter() - t0) * 1000)
        return content

    async def aclose(self) -> None:
        await self._client.aclose()


class DeepSeekProvider(OpenAIProvider):
    """DeepSeek, a cost-effective OpenAI-compatible vendor."""

    default_base_url = DEEPSEEK_BASE_URL
    cost_per_1k_tokens = 0.0001

    def get_provider_name(self) -> str:
        return "DeepSeek"
