"""Centralized configuration for the Gym Receptionist agent.

Every value is read once from the environment (or a local ``.env`` file)
at import time.  :func:`build_chatbot_settings` turns the constants into
the :class:`ChatbotSettings` the engine runs with.
"""

from __future__ import annotations

import json
import logging
import os

from dotenv import load_dotenv
from pydantic import TypeAdapter, ValidationError

from receptionist.models import (
    AIConfig,
    BusinessHours,
    ChatbotSettings,
    DayHours,
    ProviderConfig,
)
from receptionist.prompts import (
    DEFAULT_FALLBACK_MESSAGE,
    DEFAULT_GREETING,
    DEFAULT_OUT_OF_HOURS_MESSAGE,
    DEFAULT_SYSTEM_PROMPT,
)

load_dotenv()

logger = logging.getLogger(__name__)

SUPPORTED_PROVIDERS = ("openai", "deepseek", "anthropic")


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


# ── Chatbot ─────────────────────────────────────────────────────────
CHATBOT_ENABLED: bool = _env_bool("CHATBOT_ENABLED", True)
CHATBOT_DEFAULT_RESPONSE: str = os.getenv("CHATBOT_DEFAULT_RESPONSE", DEFAULT_GREETING)
CHATBOT_FALLBACK_MESSAGE: str = os.getenv("CHATBOT_FALLBACK_MESSAGE", DEFAULT_FALLBACK_MESSAGE)
SESSION_TIMEOUT_MINS: int = int(os.getenv("SESSION_TIMEOUT_MINS", "30"))

# ── AI ──────────────────────────────────────────────────────────────
AI_ENABLED: bool = _env_bool("AI_ENABLED", False)
AI_PROVIDER: str = os.getenv("AI_PROVIDER", "deepseek").lower()
AI_MODEL: str = os.getenv("AI_MODEL", "deepseek-chat")
AI_MAX_TOKENS: int = int(os.getenv("AI_MAX_TOKENS", "1000"))
AI_TEMPERATURE: float = float(os.getenv("AI_TEMPERATURE", "0.7"))
AI_SYSTEM_PROMPT: str = os.getenv("AI_SYSTEM_PROMPT", DEFAULT_SYSTEM_PROMPT)
USE_KNOWLEDGE_BASE: bool = _env_bool("USE_KNOWLEDGE_BASE", False)
# Comma-separated "provider:model" pairs, tried in order after the primary
AI_FALLBACK_PROVIDERS: str = os.getenv("AI_FALLBACK_PROVIDERS", "")

OPENAI_API_KEY: str = os.getenv("OPENAI_API_KEY", "")
DEEPSEEK_API_KEY: str = os.getenv("DEEPSEEK_API_KEY", "")
ANTHROPIC_API_KEY: str = os.getenv("ANTHROPIC_API_KEY", "")

# ── Business hours ──────────────────────────────────────────────────
BUSINESS_HOURS_ENABLED: bool = _env_bool("BUSINESS_HOURS_ENABLED", False)
BUSINESS_HOURS: str = os.getenv("BUSINESS_HOURS", "[]")
BUSINESS_TIMEZONE: str = os.getenv("BUSINESS_TIMEZONE", "UTC")
OUT_OF_HOURS_MESSAGE: str = os.getenv("OUT_OF_HOURS_MESSAGE", DEFAULT_OUT_OF_HOURS_MESSAGE)
ALLOW_AUTOMATED_OUTSIDE: bool = _env_bool("ALLOW_AUTOMATED_OUTSIDE", False)

# ── Context & knowledge ─────────────────────────────────────────────
CONTEXT_WINDOW: int = int(os.getenv("CONTEXT_WINDOW", "20"))
KNOWLEDGE_MAX_CHUNKS: int = int(os.getenv("KNOWLEDGE_MAX_CHUNKS", "5"))
KNOWLEDGE_MIN_SCORE: float = float(os.getenv("KNOWLEDGE_MIN_SCORE", "0.1"))

# ── Data files ──────────────────────────────────────────────────────
RULES_FILE: str = os.getenv("RULES_FILE", "data/rules.json")
FLOWS_FILE: str = os.getenv("FLOWS_FILE", "data/flows.json")
KNOWLEDGE_BASE_FILE: str = os.getenv("KNOWLEDGE_BASE_FILE", "KNOWLEDGE_BASE.md")

# ── Server ──────────────────────────────────────────────────────────
SERVER_HOST: str = os.getenv("SERVER_HOST", "0.0.0.0")
SERVER_PORT: int = int(os.getenv("SERVER_PORT", "8000"))
CORS_ORIGINS: list[str] = os.getenv(
    "CORS_ORIGINS",
    "http://localhost:3000,http://localhost:5173",
).split(",")


# ── Settings assembly ───────────────────────────────────────────────

def api_key_for(provider: str) -> str:
    """Return the configured API key for *provider* (empty if unset)."""
    return {
        "openai": OPENAI_API_KEY,
        "deepseek": DEEPSEEK_API_KEY,
        "anthropic": ANTHROPIC_API_KEY,
    }.get(provider, "")


def parse_fallback_providers(raw: str) -> list[ProviderConfig]:
    """Parse ``"openai:gpt-4o-mini,anthropic:claude-3-haiku"`` into configs.

    Entries naming an unsupported provider or missing a model are skipped
    with a warning.
    """
    configs: list[ProviderConfig] = []
    for entry in filter(None, (part.strip() for part in raw.split(","))):
        provider, _, model = entry.partition(":")
        provider = provider.strip().lower()
        model = model.strip()
        if provider not in SUPPORTED_PROVIDERS or not model:
            logger.warning("Ignoring invalid fallback provider entry %r", entry)
            continue
        configs.append(ProviderConfig(
            provider=provider,
            model=model,
            api_key=api_key_for(provider),
            max_tokens=AI_MAX_TOKENS,
            temperature=AI_TEMPERATURE,
        ))
    return configs


def parse_business_hours(raw: str) -> list[DayHours]:
    """Parse the ``BUSINESS_HOURS`` JSON list; invalid JSON yields no hours."""
    try:
        return TypeAdapter(list[DayHours]).validate_python(json.loads(raw or "[]"))
    except (json.JSONDecodeError, ValidationError):
        logger.error("BUSINESS_HOURS is not a valid JSON list of {day, start, end}")
        return []


def build_chatbot_settings() -> ChatbotSettings:
    """Assemble :class:`ChatbotSettings` from the environment constants."""
    provider = AI_PROVIDER if AI_PROVIDER in SUPPORTED_PROVIDERS else "deepseek"
    if provider != AI_PROVIDER:
        logger.warning("Unsupported AI_PROVIDER %r, using deepseek", AI_PROVIDER)

    return ChatbotSettings(
        is_enabled=CHATBOT_ENABLED,
        default_response=CHATBOT_DEFAULT_RESPONSE,
        fallback_message=CHATBOT_FALLBACK_MESSAGE,
        session_timeout_mins=SESSION_TIMEOUT_MINS,
        ai=AIConfig(
            enabled=AI_ENABLED,
            provider=provider,
            model=AI_MODEL,
            api_key=api_key_for(provider),
            max_tokens=AI_MAX_TOKENS,
            temperature=AI_TEMPERATURE,
            system_prompt=AI_SYSTEM_PROMPT,
            use_knowledge_base=USE_KNOWLEDGE_BASE,
            fallbacks=parse_fallback_providers(AI_FALLBACK_PROVIDERS),
        ),
        business_hours=BusinessHours(
            enabled=BUSINESS_HOURS_ENABLED,
            hours=parse_business_hours(BUSINESS_HOURS),
            out_of_hours_message=OUT_OF_HOURS_MESSAGE,
            allow_automated_outside=ALLOW_AUTOMATED_OUTSIDE,
            timezone=BUSINESS_TIMEZONE,
        ),
    )


def validate_ai_configuration(settings: ChatbotSettings) -> tuple[bool, str | None]:
    """Check that the AI settings can actually produce replies.

    Returns ``(True, None)`` when AI is disabled or fully configured,
    otherwise ``(False, reason)``.
    """
    ai = settings.ai
    if not ai.enabled:
        return True, None
    if ai.provider not in SUPPORTED_PROVIDERS:
        return False, f"Unsupported AI provider: {ai.provider}"
    if not ai.api_key:
        return False, f"No API key configured for {ai.provider}"
    if not ai.model:
        return False, "No AI model configured"
    if not 0 <= ai.temperature <= 2:
        return False, f"Temperature must be between 0 and 2, got {ai.temperature}"
    if ai.max_tokens <= 0:
        return False, f"max_tokens must be positive, got {ai.max_tokens}"
    return True, None


def get_available_providers() -> list[dict[str, object]]:
    """List supported providers and whether an API key is configured for each."""
    return [
        {"provider": name, "configured": bool(api_key_for(name))}
        for name in SUPPORTED_PROVIDERS
    ]
