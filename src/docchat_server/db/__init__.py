"""
Database Package

Provides SQLAlchemy async session management, model definitions and the
document store for PostgreSQL with pgvector.
"""

from .session import get_async_session, create_engine, create_session_factory, init_models
from .models import Base, RagFile, RagChunk, ChatNamespace, ChatHistoryEntry
from .document_store import DocumentStore

__all__ = [
    "get_async_session",
    "create_engine",
    "create_session_factory",
    "init_models",
    "Base",
    "RagFile",
    "RagChunk",
    "ChatNamespace",
    "ChatHistoryEntry",
    "DocumentStore",
]
