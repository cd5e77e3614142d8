"""
Request-scoped dependency wiring.

Long-lived clients (embedder, chat model, chat state store, conversation
locks) are built once at startup and kept on `app.state`; the providers here
hand them out and assemble the per-request services around a database
session. Tests replace any provider through `app.dependency_overrides`.
"""

from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ..bot.handler import BotHandler
from ..chat.conversation import ConversationLoop
from ..config import settings
from ..db.document_store import DocumentStore
from ..db.session import get_async_session
from ..embeddings.embedder import Embedder
from ..llm.client import LLMClient
from ..rag.ingestion import IngestionService
from ..rag.retrieval import RetrievalService
from ..sessions.locks import ConversationLocks
from ..sessions.store import ChatStateStore


def get_embedder(request: Request) -> Embedder:
    return request.app.state.embedder


def get_llm_client(request: Request) -> LLMClient:
    return request.app.state.llm


def get_chat_state(request: Request) -> ChatStateStore:
    return request.app.state.chat_state


def get_conversation_locks(request: Request) -> ConversationLocks:
    return request.app.state.conversation_locks


def get_document_store(
    session: Annotated[AsyncSession, Depends(get_async_session)],
) -> DocumentStore:
    return DocumentStore(session)


def get_retrieval_service(
    embedder: Annotated[Embedder, Depends(get_embedder)],
    store: Annotated[DocumentStore, Depends(get_document_store)],
) -> RetrievalService:
    return RetrievalService(embedder, store)


def get_ingestion_service(
    embedder: Annotated[Embedder, Depends(get_embedder)],
    store: Annotated[DocumentStore, Depends(get_document_store)],
) -> IngestionService:
    return IngestionService(embedder, store)


def get_bot_handler(
    state: Annotated[ChatStateStore, Depends(get_chat_state)],
    retrieval: Annotated[RetrievalService, Depends(get_retrieval_service)],
    llm: Annotated[LLMClient, Depends(get_llm_client)],
    locks: Annotated[ConversationLocks, Depends(get_conversation_locks)],
) -> BotHandler:
    return BotHandler(
        state=state,
        retrieval=retrieval,
        conversation=ConversationLoop(llm, retrieval),
        locks=locks,
        allowed_chat_id=settings.allowed_chat_id,
    )
