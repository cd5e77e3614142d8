"""
Application Entry Point

This module defines the FastAPI application instance, registers all routers,
configures exception handling, and builds the long-lived clients the
request handlers share.

Design Goals
------------
- Deterministic startup with fail-fast configuration checks
- Clients constructed once at startup and injected, never created lazily
- Centralized router registration
- Global exception safety net
- Test-friendly via create_app()
"""

from __future__ import annotations

import contextlib
import logging
from typing import AsyncIterator

from fastapi import FastAPI

from .bot.handler import drain_background_tasks
from .config import settings
from .core.errors import (
    DocChatError,
    domain_exception_handler,
    unhandled_exception_handler,
)
from .db.session import create_engine, create_session_factory, init_models
from .embeddings.embedder import Embedder
from .llm.client import LLMClient
from .sessions.db_store import DatabaseChatStateStore
from .sessions.locks import ConversationLocks
from .sessions.store import InMemoryChatStateStore

from .api import (
    chat_routes,
    files_routes,
    health_routes,
    search_routes,
    webhook_routes,
)


logger = logging.getLogger("docchat.app")


# ---------------------------------------------------------------------
# Lifespan: build and tear down shared clients
# ---------------------------------------------------------------------

@contextlib.asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Validate configuration and build the shared clients.

    Everything request handlers need is attached to `app.state` here and
    handed out by `api/dependencies.py`.
    """
    logger.info("Starting docchat-server")

    if not settings.openai_api_key.get_secret_value():
        raise RuntimeError("OPENAI_API_KEY is not configured")
    if not settings.jwt_secret.get_secret_value():
        raise RuntimeError("JWT_SECRET is not configured")

    engine = create_engine(settings.database_url)
    session_factory = create_session_factory(engine)
    if settings.create_tables:
        await init_models(engine)

    app.state.session_factory = session_factory
    app.state.embedder = Embedder()
    app.state.llm = LLMClient()
    app.state.conversation_locks = ConversationLocks()
    app.state.chat_state = (
        InMemoryChatStateStore()
        if settings.chat_state_backend == "memory"
        else DatabaseChatStateStore(session_factory)
    )

    logger.info(
        "Configuration validated (chat model %s, embedding model %s, state backend %s)",
        settings.chat_model,
        settings.embedding_model,
        settings.chat_state_backend,
    )

    try:
        yield
    finally:
        logger.info("Shutting down docchat-server")
        await drain_background_tasks()
        await engine.dispose()


# ---------------------------------------------------------------------
# Application Factory (Test-Friendly)
# ---------------------------------------------------------------------

def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns
    -------
    FastAPI
        Fully configured FastAPI application.
    """
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(
        title="docchat-server",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # --------------------------------------------------------------
    # Exception Handling
    # --------------------------------------------------------------

    app.add_exception_handler(DocChatError, domain_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # --------------------------------------------------------------
    # Router Registration
    # --------------------------------------------------------------

    app.include_router(health_routes.router)
    app.include_router(files_routes.router)
    app.include_router(search_routes.router)
    app.include_router(chat_routes.router)
    app.include_router(webhook_routes.router)

    return app


# ---------------------------------------------------------------------
# Default Application Instance (for Uvicorn/Gunicorn)
# ---------------------------------------------------------------------

app = create_app()
