"""The receptionist orchestration engine.

One inbound message goes through a fixed decision order and produces
exactly one :class:`AgentResponse`:

    disabled? → business hours → active flow → transfer rule → flow start
      → greeting (new session) → text rule → AI → fallback

The engine never raises out of ``process_message``; every failure becomes
a response the transport can send.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from typing import Any

from receptionist.core.business_hours import is_within_business_hours
from receptionist.core.context_manager import ContextManager
from receptionist.core.flow_executor import FlowExecutor
from receptionist.core.keyword_matcher import KeywordMatcher
from receptionist.models import (
    AgentResponse,
    ChatbotSettings,
    ConversationFlow,
    ErrorCode,
    FlowStep,
    ResponseType,
    Session,
)
from receptionist.prompts import DEFAULT_SYSTEM_PROMPT, DISABLED_MESSAGE, TRANSFER_MESSAGE
from receptionist.providers.base import GenerationRequest, ProviderError
from receptionist.providers.factory import ProviderFactory
from receptionist.services.knowledge_retriever import KnowledgeRetriever
from receptionist.services.rule_store import RuleStore

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

# Built-in flow offered until a rule store supplies its own.
APPOINTMENT_FLOW = ConversationFlow(
    id="appointment_flow",
    name="Appointment Booking",
    triggers=["appointment"],
    steps=[
        FlowStep(id="ask_date", type="question", content="What date would work for you?"),
        FlowStep(id="ask_time", type="question", content="What time is best?"),
    ],
)
DEFAULT_FLOWS = (APPOINTMENT_FLOW,)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class AgentEngine:
    """Routes each inbound message to rules, flows, the AI or the fallback.

    Collaborators are injected so that tests (and other deployments) can
    swap the rule source, the provider factory or the knowledge store
    without touching the pipeline.
    """

    def __init__(
        self,
        settings: ChatbotSettings,
        *,
        rule_store: RuleStore | None = None,
        flows: Iterable[ConversationFlow] | None = None,
        provider_factory: ProviderFactory | None = None,
        knowledge_retriever: KnowledgeRetriever | None = None,
        context_manager: ContextManager | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._settings = settings
        self._rule_store = rule_store
        self._providers = provider_factory or ProviderFactory()
        self._knowledge = knowledge_retriever or KnowledgeRetriever()
        self._context = context_manager or ContextManager()
        self._clock = clock or _utcnow

        self.keyword_matcher = KeywordMatcher()
        self.flow_executor = FlowExecutor(DEFAULT_FLOWS if flows is None else flows)

    # ── Setup ────────────────────────────────────────────────────────

    async def initialize(self) -> None:
        """Load rules and flows from the rule store, if one was given.

        A failing store is logged; whatever was loaded before stays active.
        """
        if self._rule_store is None:
            logger.info("No rule store configured, starting without keyword rules")
            return

        try:
            rules = await self._rule_store.load_rules()
        except Exception:
            logger.exception("Failed to load keyword rules, keeping previous set")
        else:
            count = self.keyword_matcher.load_rules(rules)
            logger.info("Loaded %d keyword rules", count)

        try:
            flows = await self._rule_store.load_flows()
        except Exception:
            logger.exception("Failed to load conversation flows, keeping previous set")
        else:
            if flows:
                self.flow_executor.load_flows(flows)

    # ── Settings ─────────────────────────────────────────────────────

    def get_settings(self) -> ChatbotSettings:
        return self._settings

    def update_settings(self, **changes: Any) -> ChatbotSettings:
        """Apply *changes* and swap in a freshly validated settings object.

        Dicts given for ``ai`` or ``business_hours`` are merged into the
        current values, so ``update_settings(ai={"enabled": False})`` only
        touches that one field.  In-flight calls keep the old object.

        Raises:
            ValueError: an unknown field name.
            pydantic.ValidationError: a value that fails validation.  The
                current settings stay in place.
        """
        unknown = set(changes) - set(ChatbotSettings.model_fields)
        if unknown:
            raise ValueError(f"Unknown settings: {', '.join(sorted(unknown))}")

        data = self._settings.model_dump()
        for key, value in changes.items():
            if isinstance(value, dict) and isinstance(data.get(key), dict):
                data[key] = {**data[key], **value}
            else:
                data[key] = value

        self._settings = ChatbotSettings.model_validate(data)
        logger.info("Chatbot settings updated: %s", ", ".join(sorted(changes)))
        return self._settings

    def is_within_business_hours(self) -> bool:
        return is_within_business_hours(self._settings.business_hours, self._clock())

    async def aclose(self) -> None:
        """Close the provider clients."""
        await self._providers.aclose()

    # ── Pipeline ─────────────────────────────────────────────────────

    async def process_message(self, text: str, session: Session) -> AgentResponse:
        """Produce the reply to *text* for *session*.  Never raises."""
        settings = self._settings
        try:
            if not settings.is_enabled:
                return AgentResponse(
                    success=False,
                    message=DISABLED_MESSAGE,
                    error=ErrorCode.CHATBOT_DISABLED,
                )

            hours = settings.business_hours
            if not self.is_within_business_hours() and not hours.allow_automated_outside:
                return AgentResponse(
                    success=True,
                    message=hours.out_of_hours_message,
                    session=session,
                    metadata={"outside_business_hours": True},
                )

            session.last_activity_at = self._clock()

            if session.in_flow:
                return self._continue_flow(text, session, settings)

            transfer = self.keyword_matcher.match(text, ResponseType.TRANSFER)
            if transfer is not None:
                return AgentResponse(
                    success=True,
                    message=transfer.body or TRANSFER_MESSAGE,
                    session=session,
                    metadata={"action": "transfer", "rule_id": transfer.id},
                )

            flow = self._find_flow(text)
            if flow is not None:
                message = self.flow_executor.start(flow, session)
                return AgentResponse(
                    success=True,
                    message=message,
                    session=session,
                    metadata={"flow_started": session.in_flow, "flow_id": flow.id},
                )

            if session.is_new_session:
                session.is_new_session = False
                return AgentResponse(success=True, message=settings.default_response, session=session)

            rule = self.keyword_matcher.match(text, ResponseType.TEXT)
            if rule is not None:
                return AgentResponse(
                    success=True,
                    message=rule.body or "",
                    session=session,
                    metadata={"rule_id": rule.id},
                )

            if settings.ai.enabled:
                reply = await self._generate_ai_reply(text, session, settings)
                if reply:
                    return AgentResponse(
                        success=True, message=reply, session=session, metadata={"source": "ai"},
                    )

            return AgentResponse(success=True, message=settings.fallback_message, session=session)

        except Exception:
            logger.exception("Error processing message for session %s", session.session_id)
            return AgentResponse(
                success=False,
                message=settings.fallback_message,
                session=session,
                error=ErrorCode.PROCESSING_ERROR,
            )

    # ── Steps ────────────────────────────────────────────────────────

    def _continue_flow(
        self, text: str, session: Session, settings: ChatbotSettings,
    ) -> AgentResponse:
        try:
            result = self.flow_executor.advance(text, session)
        except Exception:
            logger.exception(
                "Flow %s failed for session %s, abandoning it",
                session.current_flow_id, session.session_id,
            )
            session.clear_flow()
            return AgentResponse(success=True, message=settings.fallback_message, session=session)

        if result.completed:
            session.clear_flow()
            return AgentResponse(
                success=True,
                message=result.message,
                session=session,
                metadata={"flow_completed": True},
            )

        metadata = {"action": "transfer"} if result.step_type == "transfer" else None
        return AgentResponse(success=True, message=result.message, session=session, metadata=metadata)

    def _find_flow(self, text: str) -> ConversationFlow | None:
        """A ``flow`` rule naming a known flow wins over trigger phrases."""
        rule = self.keyword_matcher.match(text, ResponseType.FLOW)
        if rule is not None:
            flow_id = rule.response_content.get("flow_id") or rule.response_content.get("flowId")
            flow = self.flow_executor.get_flow(flow_id) if flow_id else None
            if flow is not None:
                return flow
            logger.warning("Flow rule %s names unknown flow %r", rule.id, flow_id)

        return self.keyword_matcher.match_flow_trigger(text, self.flow_executor.flows)

    async def _generate_ai_reply(
        self, text: str, session: Session, settings: ChatbotSettings,
    ) -> str | None:
        ai = settings.ai
        if not ai.is_configured:
            logger.warning("AI enabled but no API key configured for %s", ai.provider)
            return None

        knowledge: list[str] = []
        if ai.use_knowledge_base:
            knowledge = await self._knowledge.retrieve(text)
            if knowledge:
                logger.info("Found %d relevant knowledge chunks", len(knowledge))

        system_prompt = ai.system_prompt or DEFAULT_SYSTEM_PROMPT
        self._context.add_message(session, "user", text)
        request = GenerationRequest(
            messages=self._context.get_messages_for_ai(session, system_prompt),
            system_prompt=system_prompt,
            max_tokens=ai.max_tokens or 1000,
            temperature=ai.temperature,
            knowledge_context=knowledge,
        )

        try:
            reply = await self._providers.generate_with_fallback(ai.provider_configs(), request)
        except ProviderError as exc:
            logger.error("AI generation failed (%s): %s", exc.provider, exc)
            return None
        except Exception:
            logger.exception("Unexpected error generating AI reply")
            return None

        if not reply:
            logger.error("Empty reply from AI provider")
            return None

        self._context.add_message(session, "assistant", reply)
        return reply
