"""
Document Store

PostgreSQL + pgvector backed storage for documents and their chunks, and
the similarity query the retrieval service delegates to. Nearest-neighbour
search itself is pgvector's job; this adapter only shapes the query.
"""

from __future__ import annotations

from typing import List, Sequence

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from .models import RagChunk, RagFile
from ..core.errors import PersistenceError
from ..rag.models import ChunkRecord, DocumentMetadata, FileRecord, RetrievalMatch


def _escape_like(term: str) -> str:
    """Escape LIKE wildcards so the term matches literally."""
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class DocumentStore:
    """
    Document/chunk persistence and similarity search over one session.

    Writes are flushed, not committed; the caller owns the transaction via
    `commit()` / `rollback()`.
    """

    def __init__(self, session: AsyncSession) -> None:
        """
        Initialize with an async database session.

        Parameters
        ----------
        session : AsyncSession
            SQLAlchemy async session for database operations.
        """
        self._session = session

    async def commit(self) -> None:
        """
        Commit the current transaction.
        """
        await self._session.commit()

    async def rollback(self) -> None:
        """
        Roll back the current transaction.
        """
        await self._session.rollback()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def insert_document(self, metadata: DocumentMetadata) -> FileRecord:
        """
        Insert a Document row and return it with its generated id.

        Raises
        ------
        PersistenceError
            If the insert fails.
        """
        record = RagFile(
            namespace=metadata.namespace,
            source_type=metadata.source_type,
            source_url=metadata.source_url,
            file_name=metadata.file_name,
            mime_type=metadata.mime_type,
            size_bytes=metadata.size_bytes,
            tokens=metadata.tokens,
        )
        try:
            self._session.add(record)
            await self._session.flush()
            await self._session.refresh(record)
        except SQLAlchemyError as exc:
            raise PersistenceError(
                f"Failed to insert file metadata: {type(exc).__name__}"
            ) from exc

        return FileRecord.model_validate(record)

    async def insert_chunks(self, file_id: int, chunks: Sequence[ChunkRecord]) -> int:
        """
        Insert all chunks of one document.

        Returns
        -------
        int
            Number of chunks inserted.

        Raises
        ------
        PersistenceError
            If the insert fails.
        """
        if not chunks:
            return 0

        try:
            self._session.add_all(
                [
                    RagChunk(
                        file_id=file_id,
                        chunk_index=chunk.chunk_index,
                        content=chunk.content,
                        embedding=chunk.embedding,
                        token_count=chunk.token_count,
                    )
                    for chunk in chunks
                ]
            )
            await self._session.flush()
        except SQLAlchemyError as exc:
            raise PersistenceError(
                f"Failed to insert chunks: {type(exc).__name__}"
            ) from exc

        return len(chunks)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def similarity_search(
        self,
        namespace: str,
        query_embedding: List[float],
        k: int,
        min_similarity: float,
    ) -> List[RetrievalMatch]:
        """
        Return up to `k` chunks in `namespace` with cosine similarity of at
        least `min_similarity`, most similar first.
        """
        # pgvector's <=> operator; similarity = 1 - distance
        cosine_distance = RagChunk.embedding.cosine_distance(query_embedding)
        similarity = (1 - cosine_distance).label("similarity")

        stmt = (
            select(RagChunk.content, similarity, RagFile)
            .join(RagFile, RagChunk.file_id == RagFile.id)
            .where(RagFile.namespace == namespace)
            .where(1 - cosine_distance >= min_similarity)
            .order_by(cosine_distance)
            .limit(k)
        )

        result = await self._session.execute(stmt)

        return [
            RetrievalMatch(
                content=row.content,
                similarity=float(row.similarity),
                file=FileRecord.model_validate(row.RagFile),
            )
            for row in result.all()
        ]

    async def find_documents_by_name(
        self,
        namespace: str,
        term: str,
        limit: int,
    ) -> List[FileRecord]:
        """
        Case-insensitive substring match on file names, newest first.
        """
        stmt = (
            select(RagFile)
            .where(RagFile.namespace == namespace)
            .where(RagFile.file_name.ilike(f"%{_escape_like(term)}%", escape="\\"))
            .order_by(RagFile.created_at.desc(), RagFile.id.desc())
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return [FileRecord.model_validate(row) for row in result.scalars().all()]

    async def list_documents(self, namespace: str, limit: int) -> List[FileRecord]:
        """
        Documents in `namespace`, newest first.
        """
        stmt = (
            select(RagFile)
            .where(RagFile.namespace == namespace)
            .order_by(RagFile.created_at.desc(), RagFile.id.desc())
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return [FileRecord.model_validate(row) for row in result.scalars().all()]

    async def list_distinct_namespaces(self, limit: int) -> List[str]:
        """
        Distinct namespaces that own at least one document, ascending.
        """
        stmt = (
            select(RagFile.namespace)
            .distinct()
            .order_by(RagFile.namespace)
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return [row[0] for row in result.all()]
