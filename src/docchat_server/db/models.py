"""
SQLAlchemy Models

Defines the database schema for:
- Documents (uploaded files) and their embedded chunks (pgvector)
- Per-conversation active namespace binding
- Per-conversation rolling message history
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional, List

from sqlalchemy import (
    BigInteger,
    Column,
    String,
    Integer,
    Text,
    DateTime,
    ForeignKey,
    Index,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from pgvector.sqlalchemy import Vector

from ..config import settings


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


# ---------------------------------------------------------------------
# Document Model
# ---------------------------------------------------------------------

class RagFile(Base):
    """
    An ingested document. Immutable once created; owns its chunks.
    """
    __tablename__ = "rag_files"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    namespace: Mapped[str] = mapped_column(Text, nullable=False)
    source_type: Mapped[str] = mapped_column(String(16), nullable=False, default="upload")  # upload | url
    source_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    file_name: Mapped[str] = mapped_column(Text, nullable=False)
    mime_type: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    size_bytes: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    tokens: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    chunks: Mapped[List["RagChunk"]] = relationship(
        "RagChunk",
        back_populates="file",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="RagChunk.chunk_index",
    )

    __table_args__ = (
        Index("idx_rag_files_namespace_created", "namespace", "created_at"),
    )


# ---------------------------------------------------------------------
# Chunk Model
# ---------------------------------------------------------------------

class RagChunk(Base):
    """
    One overlapping slice of a document with its embedding vector.
    """
    __tablename__ = "rag_chunks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    file_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("rag_files.id", ondelete="CASCADE"),
        nullable=False,
    )
    chunk_index: Mapped[int] = mapped_column(Integer, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    token_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    # Dimensionality is fixed by the embedding model.
    embedding = Column(Vector(settings.embedding_dimensions), nullable=False)

    file: Mapped["RagFile"] = relationship("RagFile", back_populates="chunks")

    __table_args__ = (
        UniqueConstraint("file_id", "chunk_index", name="uq_chunk_file_index"),
    )


# ---------------------------------------------------------------------
# Conversation State Models
# ---------------------------------------------------------------------

class ChatNamespace(Base):
    """
    Active namespace binding for a conversation. Absence of a row means
    "no namespace selected".
    """
    __tablename__ = "rag_chat_namespaces"

    chat_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    namespace: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )


class ChatHistoryEntry(Base):
    """
    A single turn in a conversation's rolling history.
    """
    __tablename__ = "rag_chat_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    chat_id: Mapped[str] = mapped_column(String(64), nullable=False)
    role: Mapped[str] = mapped_column(String(16), nullable=False)  # user | assistant
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    __table_args__ = (
        Index("idx_history_chat_created", "chat_id", "created_at"),
    )
