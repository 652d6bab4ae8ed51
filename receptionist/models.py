"""Pydantic models shared by the engine, the providers and the API layer.

Sessions are mutable and owned by the engine for the duration of one
``process_message`` call.  Rules, flows and provider configs are read-only
reference data.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from receptionist.prompts import (
    DEFAULT_FALLBACK_MESSAGE,
    DEFAULT_GREETING,
    DEFAULT_OUT_OF_HOURS_MESSAGE,
)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


# ── Enumerations ─────────────────────────────────────────────────────


class MatchType(StrEnum):
    EXACT = "exact"
    CONTAINS = "contains"
    STARTS_WITH = "starts_with"
    REGEX = "regex"


class ResponseType(StrEnum):
    TEXT = "text"
    TRANSFER = "transfer"
    FLOW = "flow"


class ErrorCode(StrEnum):
    CHATBOT_DISABLED = "CHATBOT_DISABLED"
    PROCESSING_ERROR = "PROCESSING_ERROR"


Role = Literal["user", "assistant", "system"]


# ── Conversation state ───────────────────────────────────────────────


class Message(BaseModel):
    """One entry of a session's conversation history."""

    model_config = ConfigDict(frozen=True)

    role: Role
    content: str
    timestamp: datetime = Field(default_factory=_utcnow)


class Session(BaseModel):
    """One ongoing conversation.

    Persisted and reloaded by the transport between calls; mutated in place
    by the context manager and the flow executor while the engine owns it.
    """

    session_id: str
    client_id: str | None = None
    contact_phone: str | None = None
    is_new_session: bool = True
    current_flow_id: str | None = None
    current_step_id: str | None = None
    flow_data: dict[str, Any] = Field(default_factory=dict)
    conversation_history: list[Message] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utcnow)
    last_activity_at: datetime = Field(default_factory=_utcnow)
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def in_flow(self) -> bool:
        return self.current_flow_id is not None

    def enter_flow(self, flow_id: str, first_step_id: str | None) -> None:
        """Make *flow_id* the active flow, discarding any previous flow data."""
        self.current_flow_id = flow_id
        self.current_step_id = first_step_id
        self.flow_data = {}

    def clear_flow(self) -> None:
        """Leave the active flow (completed or abandoned)."""
        self.current_flow_id = None
        self.current_step_id = None
        self.flow_data = {}


# ── Keyword rules ────────────────────────────────────────────────────


class KeywordRule(BaseModel):
    """A prioritised pattern → response mapping.

    Accepts both snake_case keys and the camelCase keys used by the
    dashboard export (``matchType``, ``responseContent``, ``isEnabled``...).
    """

    model_config = ConfigDict(frozen=True, coerce_numbers_to_str=True)

    id: str
    name: str = ""
    keywords: list[str] = Field(default_factory=list)
    match_type: MatchType = Field(
        default=MatchType.CONTAINS,
        validation_alias=AliasChoices("match_type", "matchType"),
    )
    response_type: ResponseType = Field(
        default=ResponseType.TEXT,
        validation_alias=AliasChoices("response_type", "responseType"),
    )
    response_content: dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("response_content", "responseContent"),
    )
    priority: int = 0
    enabled: bool = Field(
        default=True,
        validation_alias=AliasChoices("enabled", "isEnabled"),
    )
    case_sensitive: bool = Field(
        default=False,
        validation_alias=AliasChoices("case_sensitive", "caseSensitive"),
    )

    @field_validator("match_type", mode="before")
    @classmethod
    def _unknown_match_type_is_contains(cls, v: Any) -> Any:
        if isinstance(v, str) and v not in {m.value for m in MatchType}:
            logger.warning("Unknown match type %r, treating as 'contains'", v)
            return MatchType.CONTAINS
        return v

    @field_validator("response_type", mode="before")
    @classmethod
    def _unknown_response_type_is_text(cls, v: Any) -> Any:
        if isinstance(v, str) and v not in {r.value for r in ResponseType}:
            logger.warning("Unknown response type %r, treating as 'text'", v)
            return ResponseType.TEXT
        return v

    @property
    def body(self) -> str | None:
        return self.response_content.get("body")


# ── Conversation flows ───────────────────────────────────────────────


class FlowOption(BaseModel):
    model_config = ConfigDict(frozen=True)

    label: str
    next_step_id: str = Field(validation_alias=AliasChoices("next_step_id", "nextStepId"))


class FlowCondition(BaseModel):
    model_config = ConfigDict(frozen=True)

    field: str
    operator: str
    value: Any = None


class FlowStep(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    type: Literal["question", "message", "transfer", "action"] = "question"
    content: str = ""
    options: list[FlowOption] = Field(default_factory=list)
    conditions: list[FlowCondition] = Field(default_factory=list)


class ConversationFlow(BaseModel):
    """A predefined multi-step guided dialogue."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str = ""
    triggers: list[str] = Field(default_factory=list)
    steps: list[FlowStep] = Field(default_factory=list)
    completion_message: str | None = Field(
        default=None,
        validation_alias=AliasChoices("completion_message", "completionMessage"),
    )

    @property
    def first_step(self) -> FlowStep | None:
        return self.steps[0] if self.steps else None

    def get_step(self, step_id: str) -> FlowStep | None:
        for step in self.steps:
            if step.id == step_id:
                return step
        return None

    def step_index(self, step_id: str) -> int | None:
        for index, step in enumerate(self.steps):
            if step.id == step_id:
                return index
        return None


# ── Settings ─────────────────────────────────────────────────────────

ProviderName = Literal["openai", "deepseek", "anthropic"]


class DayHours(BaseModel):
    model_config = ConfigDict(frozen=True)

    day: int = Field(ge=0, le=6, description="Day of week, Monday = 0")
    start: str = Field(pattern=r"^\d{1,2}:\d{2}$")
    end: str = Field(pattern=r"^\d{1,2}:\d{2}$")


class BusinessHours(BaseModel):
    enabled: bool = False
    hours: list[DayHours] = Field(default_factory=list)
    out_of_hours_message: str = DEFAULT_OUT_OF_HOURS_MESSAGE
    allow_automated_outside: bool = False
    timezone: str = "UTC"


class ProviderConfig(BaseModel):
    """Immutable description of one provider endpoint."""

    model_config = ConfigDict(frozen=True)

    provider: ProviderName
    model: str
    api_key: str = Field(default="", repr=False)
    max_tokens: int = 1000
    temperature: float = 0.7
    base_url: str | None = None
    timeout_seconds: float = 30.0

    @property
    def cache_key(self) -> tuple[str, str]:
        return (self.provider, self.model)


class AIConfig(BaseModel):
    enabled: bool = False
    provider: ProviderName = "deepseek"
    model: str = "deepseek-chat"
    api_key: str = Field(default="", repr=False)
    max_tokens: int = 1000
    temperature: float = 0.7
    system_prompt: str = ""
    use_knowledge_base: bool = False
    fallbacks: list[ProviderConfig] = Field(default_factory=list)

    @property
    def is_configured(self) -> bool:
        return self.enabled and bool(self.api_key)

    def primary_config(self) -> ProviderConfig:
        return ProviderConfig(
            provider=self.provider,
            model=self.model,
            api_key=self.api_key,
            max_tokens=self.max_tokens or 1000,
            temperature=self.temperature,
        )

    def provider_configs(self) -> list[ProviderConfig]:
        """Primary provider first, then fallbacks in preference order."""
        return [self.primary_config(), *self.fallbacks]


class ChatbotSettings(BaseModel):
    is_enabled: bool = True
    default_response: str = DEFAULT_GREETING
    fallback_message: str = DEFAULT_FALLBACK_MESSAGE
    session_timeout_mins: int = 30
    ai: AIConfig = Field(default_factory=AIConfig)
    business_hours: BusinessHours = Field(default_factory=BusinessHours)


# ── Engine output ────────────────────────────────────────────────────


class AgentResponse(BaseModel):
    """The single output contract of :class:`AgentEngine`."""

    success: bool
    message: str
    session: Session | None = None
    error: ErrorCode | None = None
    metadata: dict[str, Any] | None = None
