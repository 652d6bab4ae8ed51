"""Bounded conversation history for AI generation."""

from __future__ import annotations

import logging

from receptionist.models import Message, Role, Session
from receptionist.prompts import DEFAULT_SYSTEM_PROMPT

logger = logging.getLogger(__name__)

DEFAULT_CONTEXT_WINDOW = 20
MIN_CONTEXT_WINDOW = 1
MAX_CONTEXT_WINDOW = 100


class ContextManager:
    """Owns the history window of a session and renders it for providers.

    History is trimmed in batches: only once it grows past twice the window
    is it cut back to the most recent ``window`` entries.
    """

    def __init__(self, window: int = DEFAULT_CONTEXT_WINDOW) -> None:
        self._window = DEFAULT_CONTEXT_WINDOW
        self.set_context_window(window)

    @property
    def window(self) -> int:
        return self._window

    def set_context_window(self, size: int) -> None:
        self._window = max(MIN_CONTEXT_WINDOW, min(size, MAX_CONTEXT_WINDOW))

    def get_context(self, session: Session) -> list[Message]:
        """Return the most recent ``window`` history entries."""
        return session.conversation_history[-self._window:]

    def add_message(self, session: Session, role: Role, content: str) -> Message:
        message = Message(role=role, content=content)
        session.conversation_history.append(message)

        if len(session.conversation_history) > self._window * 2:
            session.conversation_history = session.conversation_history[-self._window:]
            logger.debug(
                "Session %s: history trimmed to %d messages",
                session.session_id, self._window,
            )
        return message

    def clear_context(self, session: Session) -> None:
        session.conversation_history = []

    def get_messages_for_ai(
        self, session: Session, system_prompt: str | None = None,
    ) -> list[dict[str, str]]:
        """Render one system message followed by the recent history.

        Timestamps are stripped; only ``role`` and ``content`` are sent.
        """
        messages = [{"role": "system", "content": system_prompt or DEFAULT_SYSTEM_PROMPT}]
        for msg in self.get_context(session):
            messages.append({"role": msg.role, "content": msg.content})
        return messages
