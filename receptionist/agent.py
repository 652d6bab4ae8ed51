"""Wiring: build a ready-to-use :class:`AgentEngine` from the environment."""

from __future__ import annotations

import logging

from receptionist import config
from receptionist.core.agent_engine import AgentEngine
from receptionist.core.context_manager import ContextManager
from receptionist.models import ChatbotSettings
from receptionist.providers.factory import ProviderFactory
from receptionist.services.knowledge_retriever import KnowledgeRetriever
from receptionist.services.knowledge_store import MarkdownKnowledgeStore
from receptionist.services.rule_store import FileRuleStore

logger = logging.getLogger(__name__)


async def create_receptionist_engine(settings: ChatbotSettings | None = None) -> AgentEngine:
    """Build the engine from ``config`` and load its rules and flows.

    Invalid AI settings are logged, not raised: the engine still answers
    from rules, flows and the fallback message.
    """
    settings = settings or config.build_chatbot_settings()

    ok, error = config.validate_ai_configuration(settings)
    if not ok:
        logger.warning("AI configuration invalid, AI replies will be skipped: %s", error)

    store = MarkdownKnowledgeStore.from_file(config.KNOWLEDGE_BASE_FILE)
    engine = AgentEngine(
        settings,
        rule_store=FileRuleStore(config.RULES_FILE, config.FLOWS_FILE),
        provider_factory=ProviderFactory(),
        knowledge_retriever=KnowledgeRetriever(
            store,
            max_chunks=config.KNOWLEDGE_MAX_CHUNKS,
            min_relevance_score=config.KNOWLEDGE_MIN_SCORE,
        ),
        context_manager=ContextManager(config.CONTEXT_WINDOW),
    )
    await engine.initialize()

    logger.debug(
        "Receptionist engine ready: ai: %s/%s (enabled=%s), rules: %d, flows: %d, kb sections: %d",
        settings.ai.provider, settings.ai.model, settings.ai.enabled,
        len(engine.keyword_matcher.rules), len(engine.flow_executor.flows), store.section_count,
    )
    return engine
