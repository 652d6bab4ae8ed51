"""Pydantic schemas for the FastAPI endpoints."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class ChatRequest(BaseModel):
    """Incoming test-chat message from the dashboard."""

    message: str = Field(..., min_length=1, max_length=2000, description="The user's message")
    session_id: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Unique session identifier for conversation continuity",
    )


class ChatResponse(BaseModel):
    """Reply produced by the receptionist engine."""

    reply: str = Field(..., description="The receptionist's response message")
    session_id: str = Field(..., description="The session ID for this conversation")
    success: bool = True
    error: str | None = None
    metadata: dict[str, Any] | None = None


class SessionDeletedResponse(BaseModel):
    session_id: str
    deleted: bool


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    service: str = "gym-receptionist"
