"""Shared test fixtures for the Gym Receptionist test suite."""

from __future__ import annotations

import os

import pytest

from receptionist.models import (
    AIConfig,
    ChatbotSettings,
    ConversationFlow,
    FlowStep,
    KeywordRule,
    Session,
)


def pytest_configure(config):
    """Set test environment variables BEFORE collection starts.

    This runs before any imports, so config.py reads predictable values.
    """
    os.environ.setdefault("METRICS_ENABLED", "false")
    os.environ.setdefault("AI_ENABLED", "false")
    os.environ.setdefault("DEEPSEEK_API_KEY", "sk-test-deepseek-123")
    os.environ.setdefault("OPENAI_API_KEY", "sk-test-openai-456")
    os.environ.setdefault("ANTHROPIC_API_KEY", "sk-ant-test-789")


@pytest.fixture
def make_rule():
    """Factory fixture for keyword rules with sensible defaults."""

    def _make(rule_id: str = "r1", keywords=("hola",), **overrides) -> KeywordRule:
        data = {
            "id": rule_id,
            "name": rule_id,
            "keywords": list(keywords),
            "match_type": "contains",
            "response_type": "text",
            "response_content": {"body": f"reply from {rule_id}"},
            "priority": 0,
        }
        data.update(overrides)
        return KeywordRule.model_validate(data)

    return _make


@pytest.fixture
def session() -> Session:
    """A returning session (greeting already sent)."""
    return Session(session_id="s-1", contact_phone="+5215550001111", is_new_session=False)


@pytest.fixture
def new_session() -> Session:
    return Session(session_id="s-new")


@pytest.fixture
def settings() -> ChatbotSettings:
    return ChatbotSettings(
        default_response="Welcome to Global Fit!",
        fallback_message="Sorry, I did not get that.",
    )


@pytest.fixture
def ai_settings(settings) -> ChatbotSettings:
    return settings.model_copy(update={
        "ai": AIConfig(
            enabled=True,
            provider="deepseek",
            model="deepseek-chat",
            api_key="sk-test-deepseek-123",
            system_prompt="You are the Global Fit receptionist.",
        ),
    })


@pytest.fixture
def signup_flow() -> ConversationFlow:
    return ConversationFlow(
        id="signup",
        name="Sign up",
        triggers=["sign up", "join"],
        steps=[
            FlowStep(id="ask_name", content="What is your name?"),
            FlowStep(id="ask_plan", content="Monthly or annual?"),
        ],
        completion_message="All set, see you soon!",
    )
