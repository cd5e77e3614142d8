"""
Ingestion Pipeline

Turns one uploaded text document into a Document row plus its embedded
chunks: validate → chunk → embed → persist.

Nothing is written before embedding succeeds, and the Document and Chunk
inserts share one transaction: a failed chunk insert rolls the Document
back, so a document never exists without its chunks.
"""

from __future__ import annotations

import logging
from typing import Optional

from .chunker import chunk_text, estimate_tokens
from .models import ChunkRecord, DocumentMetadata, IngestionResult, SourceType
from .namespaces import normalize_namespace
from ..config import settings
from ..core.errors import EmptyAfterPreprocessing, EmptyContent, PersistenceError
from ..db.document_store import DocumentStore
from ..embeddings.embedder import Embedder

logger = logging.getLogger("docchat.ingestion")


class IngestionService:
    """
    Orchestrates chunking, embedding and persistence for a single document.
    """

    def __init__(
        self,
        embedder: Embedder,
        store: DocumentStore,
        chunk_size: Optional[int] = None,
        chunk_overlap: Optional[int] = None,
    ) -> None:
        self._embedder = embedder
        self._store = store
        self._chunk_size = chunk_size or settings.chunk_size
        self._chunk_overlap = settings.chunk_overlap if chunk_overlap is None else chunk_overlap

    async def ingest(
        self,
        namespace: str,
        file_name: str,
        content: str,
        mime_type: Optional[str] = None,
        size_bytes: Optional[int] = None,
        source_type: SourceType = "upload",
        source_url: Optional[str] = None,
    ) -> IngestionResult:
        """
        Ingest one document.

        Raises
        ------
        InvalidNamespace
            Namespace missing or blank.
        EmptyContent
            Content is not a non-empty string.
        EmptyAfterPreprocessing
            Chunking produced nothing.
        EmbeddingError
            The embedding service failed; nothing was persisted.
        PersistenceError
            A store write failed; the transaction was rolled back.
        """
        trimmed_namespace = normalize_namespace(namespace)
        if not isinstance(content, str) or not content:
            raise EmptyContent("Content must be a non-empty string")

        chunks = chunk_text(content, self._chunk_size, self._chunk_overlap)
        if not chunks:
            raise EmptyAfterPreprocessing("Content is empty after preprocessing")

        # One batch call; any failure propagates before the first write.
        embeddings = await self._embedder.embed(chunks)

        token_counts = [estimate_tokens(chunk) for chunk in chunks]

        metadata = DocumentMetadata(
            namespace=trimmed_namespace,
            file_name=file_name,
            mime_type=mime_type,
            size_bytes=size_bytes,
            source_type=source_type,
            source_url=source_url,
            tokens=sum(token_counts),
        )

        try:
            file_record = await self._store.insert_document(metadata)
            chunk_count = await self._store.insert_chunks(
                file_record.id,
                [
                    ChunkRecord(
                        chunk_index=index,
                        content=chunk,
                        embedding=embeddings[index],
                        token_count=token_counts[index],
                    )
                    for index, chunk in enumerate(chunks)
                ],
            )
            await self._store.commit()
        except PersistenceError:
            await self._store.rollback()
            logger.error(
                "Ingestion of %r into namespace %r rolled back", file_name, trimmed_namespace
            )
            raise

        logger.info(
            "Ingested %r into namespace %r (%d chunks, ~%d tokens)",
            file_name,
            trimmed_namespace,
            chunk_count,
            metadata.tokens,
        )

        return IngestionResult(file=file_record, chunk_count=chunk_count)
