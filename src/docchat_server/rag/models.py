"""
RAG Data Models

Plain records exchanged between the document store, the ingestion and
retrieval services and the API layer. ORM rows never leave the store
adapter; these frozen models do.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


SourceType = Literal["upload", "url"]


class DocumentMetadata(BaseModel):
    """
    Everything needed to create a Document row, before it has an identity.
    """
    namespace: str = Field(..., min_length=1)
    file_name: str
    mime_type: Optional[str] = None
    size_bytes: Optional[int] = Field(default=None, ge=0)
    source_type: SourceType = "upload"
    source_url: Optional[str] = None
    tokens: int = Field(default=0, ge=0)

    model_config = ConfigDict(frozen=True, extra="forbid")


class FileRecord(BaseModel):
    """
    A persisted Document as seen by callers.
    """
    id: int
    namespace: str
    file_name: str
    source_type: str = "upload"
    source_url: Optional[str] = None
    mime_type: Optional[str] = None
    size_bytes: Optional[int] = None
    tokens: int = 0
    created_at: Optional[datetime] = None

    model_config = ConfigDict(frozen=True, from_attributes=True)


class ChunkRecord(BaseModel):
    """
    One chunk ready for insertion, already embedded.
    """
    chunk_index: int = Field(..., ge=0)
    content: str = Field(..., min_length=1)
    embedding: List[float]
    token_count: int = Field(..., ge=1)

    model_config = ConfigDict(frozen=True)


class RetrievalMatch(BaseModel):
    """
    A chunk returned by similarity search, with enough document metadata to
    attribute it in a prompt. Ephemeral, never persisted.
    """
    content: str
    similarity: float
    file: FileRecord

    model_config = ConfigDict(frozen=True)


class IngestionResult(BaseModel):
    file: FileRecord
    chunk_count: int
