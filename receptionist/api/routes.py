"""FastAPI route definitions for the receptionist test-chat API."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from datetime import UTC, datetime, timedelta

from fastapi import APIRouter, HTTPException, Request

from receptionist.api.schemas import (
    ChatRequest,
    ChatResponse,
    HealthResponse,
    SessionDeletedResponse,
)
from receptionist.core.agent_engine import AgentEngine
from receptionist.models import Session

logger = logging.getLogger(__name__)

router = APIRouter()


class SessionRegistry:
    """In-memory sessions for the test chat, one lock per session.

    The engine expects at most one ``process_message`` per session at a
    time; :meth:`hold` keeps the session's lock for the whole call.
    Sessions idle for longer than ``timeout_mins`` are dropped and the
    next message starts a fresh one.
    """

    def __init__(
        self,
        timeout_mins: int = 30,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.timeout = timedelta(minutes=timeout_mins)
        self._clock = clock or (lambda: datetime.now(UTC))
        self._sessions: dict[str, Session] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        # Requests currently waiting on or holding each session's lock.
        self._users: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, session_id: str) -> AsyncIterator[Session]:
        """Lock *session_id* and yield its session, creating it if needed."""
        self.prune()
        lock = self._locks.setdefault(session_id, asyncio.Lock())
        self._users[session_id] = self._users.get(session_id, 0) + 1
        try:
            async with lock:
                yield self._get_or_create(session_id)
        finally:
            self._release(session_id)

    async def delete(self, session_id: str) -> bool:
        """Forget *session_id*, waiting for any in-flight request on it."""
        lock = self._locks.setdefault(session_id, asyncio.Lock())
        self._users[session_id] = self._users.get(session_id, 0) + 1
        try:
            async with lock:
                return self._sessions.pop(session_id, None) is not None
        finally:
            self._release(session_id)

    def prune(self) -> int:
        """Drop expired sessions nobody is using.  Returns how many."""
        expired = [
            session_id for session_id, session in self._sessions.items()
            if self._is_expired(session) and session_id not in self._users
        ]
        for session_id in expired:
            del self._sessions[session_id]
            self._locks.pop(session_id, None)
        if expired:
            logger.info("Expired %d idle sessions", len(expired))
        return len(expired)

    def __len__(self) -> int:
        return len(self._sessions)

    # ── Internal ─────────────────────────────────────────────────────

    def _is_expired(self, session: Session) -> bool:
        return self._clock() - session.last_activity_at > self.timeout

    def _get_or_create(self, session_id: str) -> Session:
        session = self._sessions.get(session_id)
        if session is not None and self._is_expired(session):
            logger.info("Session %s expired, starting a new one", session_id)
            session = None
        if session is None:
            session = Session(session_id=session_id, last_activity_at=self._clock())
            self._sessions[session_id] = session
        return session

    def _release(self, session_id: str) -> None:
        self._users[session_id] -= 1
        if self._users[session_id]:
            return
        del self._users[session_id]
        # Only an unused lock of a forgotten session can go.
        if session_id not in self._sessions:
            self._locks.pop(session_id, None)


def _get_engine(request: Request) -> AgentEngine:
    """Retrieve the receptionist engine from app state (set by the lifespan)."""
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(
            status_code=503,
            detail="The receptionist is still starting up. Please try again in a moment.",
        )
    return engine


def _get_sessions(request: Request) -> SessionRegistry:
    sessions = getattr(request.app.state, "sessions", None)
    if sessions is None:
        sessions = SessionRegistry()
        request.app.state.sessions = sessions
    return sessions


# ── Endpoints ────────────────────────────────────────────────────────


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    return HealthResponse()


@router.post("/chat", response_model=ChatResponse)
async def chat(request: ChatRequest, http_request: Request):
    """Send a message to the receptionist and get its reply.

    The ``session_id`` keys an in-memory session so flows, greetings and
    AI history carry over between requests.
    """
    engine = _get_engine(http_request)
    sessions = _get_sessions(http_request)
    request_id = getattr(http_request.state, "request_id", "?")

    try:
        async with sessions.hold(request.session_id) as session:
            result = await engine.process_message(request.message, session)

        return ChatResponse(
            reply=result.message,
            session_id=request.session_id,
            success=result.success,
            error=str(result.error) if result.error else None,
            metadata=result.metadata,
        )

    except Exception as e:
        # Full traceback stays server-side
        logger.exception("[%s] Error processing chat request", request_id)
        raise HTTPException(
            status_code=500,
            detail="An internal error occurred. Please try again.",
        ) from e


@router.delete("/sessions/{session_id}", response_model=SessionDeletedResponse)
async def delete_session(session_id: str, http_request: Request):
    """Forget a test-chat session (history, flow state, greeting flag)."""
    deleted = await _get_sessions(http_request).delete(session_id)
    logger.info("Session %s deleted=%s", session_id, deleted)
    return SessionDeletedResponse(session_id=session_id, deleted=deleted)
