"""FastAPI server for the Gym Receptionist test chat.

Run with:
    uvicorn receptionist.server:app --reload --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from receptionist.agent import create_receptionist_engine
from receptionist.api.routes import SessionRegistry, router
from receptionist.config import CORS_ORIGINS, SERVER_HOST, SERVER_PORT
from receptionist.services.metrics import metrics

# ── Logging ──────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


# ── Lifespan: initialise / tear-down shared resources ────────────────
@asynccontextmanager
async def lifespan(application: FastAPI):
    """Build the engine once, load its rules, and store it in app state."""
    logger.info("Starting receptionist engine…")
    engine = await create_receptionist_engine()
    application.state.engine = engine
    application.state.sessions = SessionRegistry(engine.get_settings().session_timeout_mins)
    logger.info("Engine ready.")
    yield
    await engine.aclose()
    metrics.flush()


# ── FastAPI application ──────────────────────────────────────────────
app = FastAPI(
    title="Gym Receptionist Agent",
    description=(
        "WhatsApp gym receptionist: keyword rules, guided flows and "
        "multi-provider AI replies."
    ),
    version="1.0.0",
    lifespan=lifespan,
)

# ── CORS (needed for the dashboard) ─────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Request-ID middleware ────────────────────────────────────────────
@app.middleware("http")
async def add_request_id(request: Request, call_next) -> Response:
    """Attach a unique request ID to every request for log correlation.

    The ID is echoed in the ``X-Request-ID`` response header.
    """
    request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
    request.state.request_id = request_id
    logger.info(
        "[%s] %s %s", request_id, request.method, request.url.path,
    )
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


# ── Register routes ──────────────────────────────────────────────────
app.include_router(router, prefix="/api")


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "service": "Gym Receptionist Agent",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/api/health",
    }


# ── CLI entry point ──────────────────────────────────────────────────

if __name__ == "__main__":
    logger.info("Starting receptionist API server on %s:%d", SERVER_HOST, SERVER_PORT)
    uvicorn.run(
        "receptionist.server:app",
        host=SERVER_HOST,
        port=SERVER_PORT,
        reload=True,
    )
