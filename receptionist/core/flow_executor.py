"""Multi-step guided dialogues.

The executor is a state machine over the session it is handed:

    NoFlow ──start()──▶ AtStep(first) ──advance()──▶ AtStep(next) ... ──▶ NoFlow

It keeps no per-session state of its own; only the read-only flow
definitions it was built with.  Leaving a flow (``completed=True``) is
signalled to the caller, which clears the session's flow fields.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from receptionist.models import ConversationFlow, FlowCondition, FlowStep, Session
from receptionist.prompts import (
    FLOW_COMPLETED_MESSAGE,
    FLOW_ENDED_MESSAGE,
    FLOW_FIRST_STEP_MESSAGE,
)

logger = logging.getLogger(__name__)


class FlowError(Exception):
    """Raised when a session points at a flow or step that cannot be resolved."""


@dataclass(frozen=True)
class FlowResult:
    message: str
    completed: bool
    step_type: str | None = None


def _condition_holds(condition: FlowCondition, flow_data: dict[str, Any]) -> bool:
    actual = flow_data.get(condition.field)
    op = condition.operator
    if op == "equals":
        return actual == condition.value
    if op == "not_equals":
        return actual != condition.value
    if op == "contains":
        return actual is not None and str(condition.value).lower() in str(actual).lower()
    if op == "in":
        return actual in (condition.value or [])
    raise FlowError(f"Unknown condition operator: {op}")


class FlowExecutor:
    """Advances sessions through :class:`ConversationFlow` definitions."""

    def __init__(self, flows: Iterable[ConversationFlow] | None = None) -> None:
        self._flows: dict[str, ConversationFlow] = {}
        if flows is not None:
            self.load_flows(flows)

    def load_flows(self, flows: Iterable[ConversationFlow]) -> None:
        self._flows = {flow.id: flow for flow in flows}
        logger.info("Loaded %d conversation flows", len(self._flows))

    @property
    def flows(self) -> list[ConversationFlow]:
        return list(self._flows.values())

    def get_flow(self, flow_id: str) -> ConversationFlow | None:
        return self._flows.get(flow_id)

    # ── Transitions ──────────────────────────────────────────────────

    def start(self, flow: ConversationFlow, session: Session) -> str:
        """Enter *flow* at its first step and return that step's prompt.

        A flow with no steps is not entered; the session is left as it was.
        """
        first = flow.first_step
        if first is None:
            logger.warning("Flow %s has no steps, not entering it", flow.id)
            return FLOW_FIRST_STEP_MESSAGE
        session.enter_flow(flow.id, first.id)
        logger.info("Session %s entered flow %s", session.session_id, flow.id)
        return first.content or FLOW_FIRST_STEP_MESSAGE

    def advance(self, user_input: str, session: Session) -> FlowResult:
        """Record *user_input* for the current step and move to the next one."""
        flow_id = session.current_flow_id
        step_id = session.current_step_id

        if not flow_id or not step_id:
            return FlowResult(message=FLOW_ENDED_MESSAGE, completed=True)

        flow = self._flows.get(flow_id)
        if flow is None:
            raise FlowError(f"Unknown flow: {flow_id}")
        current = flow.get_step(step_id)
        if current is None:
            raise FlowError(f"Unknown step {step_id!r} in flow {flow_id}")

        session.flow_data[step_id] = user_input

        next_step = self._resolve_next_step(flow, current, user_input, session.flow_data)
        if next_step is None:
            logger.info("Session %s completed flow %s", session.session_id, flow_id)
            return FlowResult(
                message=flow.completion_message or FLOW_COMPLETED_MESSAGE,
                completed=True,
            )

        session.current_step_id = next_step.id
        return FlowResult(message=next_step.content, completed=False, step_type=next_step.type)

    # ── Step resolution ──────────────────────────────────────────────

    def _resolve_next_step(
        self,
        flow: ConversationFlow,
        current: FlowStep,
        user_input: str,
        flow_data: dict[str, Any],
    ) -> FlowStep | None:
        if current.options:
            target = self._select_option(current, user_input)
            if target is not None:
                step = flow.get_step(target)
                if step is None:
                    raise FlowError(f"Option in step {current.id!r} points at unknown step {target!r}")
                return step

        index = flow.step_index(current.id)
        for candidate in flow.steps[index + 1:]:
            if all(_condition_holds(c, flow_data) for c in candidate.conditions):
                return candidate
        return None

    @staticmethod
    def _select_option(step: FlowStep, user_input: str) -> str | None:
        answer = user_input.strip().lower()
        if answer.isdigit():
            position = int(answer) - 1
            if 0 <= position < len(step.options):
                return step.options[position].next_step_id
        for option in step.options:
            if option.label.strip().lower() == answer:
                return option.next_step_id
        return None
