"""Anthropic (Claude) provider built on langchain-anthropic."""

from __future__ import annotations

import logging
import time

import anthropic
from langchain_anthropic import ChatAnthropic
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage

from receptionist.models import ProviderConfig
from receptionist.providers.base import BaseAIProvider, GenerationRequest, ProviderError

logger = logging.getLogger(__name__)


def _to_langchain(messages: list[dict[str, str]]) -> list[BaseMessage]:
    converted: list[BaseMessage] = []
    for msg in messages:
        if msg["role"] == "system":
            converted.append(SystemMessage(content=msg["content"]))
        elif msg["role"] == "assistant":
            converted.append(AIMessage(content=msg["content"]))
        else:
            converted.append(HumanMessage(content=msg["content"]))
    return converted


def _text_of(message: BaseMessage) -> str:
    content = message.content
    if isinstance(content, str):
        return content.strip()
    # Content blocks: keep only the text parts.
    parts = [
        block.get("text", "") if isinstance(block, dict) else str(block)
        for block in content
    ]
    return "".join(parts).strip()


class AnthropicProvider(BaseAIProvider):
    """Claude via ``ChatAnthropic``.

    SDK-level retries are disabled: one call here is one vendor request, and
    retrying is the fallback chain's job.
    """

    cost_per_1k_tokens = 0.003

    def __init__(self, config: ProviderConfig) -> None:
        super().__init__(config)
        self._llm = self._build_llm()

    def _build_llm(self) -> ChatAnthropic:
        kwargs = {}
        if self.config.base_url:
            kwargs["base_url"] = self.config.base_url
        return ChatAnthropic(
            model=self.config.model,
            api_key=self.config.api_key,
            max_tokens=self.config.max_tokens,
            temperature=self.config.temperature,
            timeout=self.config.timeout_seconds,
            max_retries=0,
            **kwargs,
        )

    def get_provider_name(self) -> str:
        return "Anthropic"

    def validate_config(self) -> bool:
        return bool(self.config.model and self.config.api_key.startswith("sk-ant-"))

    async def generate_response(self, request: GenerationRequest) -> str:
        messages = _to_langchain(self.build_messages(request))
        llm = self._llm.bind(max_tokens=request.max_tokens, temperature=request.temperature)

        t0 = time.perf_counter()
        try:
            response = await llm.ainvoke(messages)
            text = _text_of(response)
            if not text:
                raise self.empty_response_error()

        except ProviderError as exc:
            self.record_failure(exc, (time.perf_counter() - t0) * 1000)
            raise
        except anthropic.APITimeoutError as exc:
            error = self.timeout_error()
            self.record_failure(error, (time.perf_counter() - t0) * 1000)
            raise error from exc
        except anthropic.APIConnectionError as exc:
            error = self.connection_error(exc)
            self.record_failure(error, (time.perf_counter() - t0) * 1000)
            raise error from exc
        except anthropic.APIStatusError as exc:
            error = self.classify_status(exc.status_code, exc.message)
            self.record_failure(error, (time.perf_counter() - t0) * 1000)
            raise error from exc

        usage = getattr(response, "usage_metadata", None) or {}
        self.record_success(int(usage.get("total_tokens", 0)), (time.perf_counter() - t0) * 1000)
        return text
