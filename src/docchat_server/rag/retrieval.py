"""
Retrieval Service

Query-time half of the RAG pipeline:

- `retrieve`: embed the query, delegate nearest-neighbour search to the
  document store, return ranked matches.
- `find_by_name`: substring lookup on document names, the payload of the
  model-callable lookup tool and of the `/files` command.
- `list_files` / `list_namespaces`: browsing helpers.

Retrieval never aborts a conversation turn. Embedding or store failures are
logged as degraded retrieval and yield an empty result, which only removes
grounding context.
"""

from __future__ import annotations

import logging
from typing import Any, List, Optional

from .models import FileRecord, RetrievalMatch
from .namespaces import normalize_namespace
from ..config import settings
from ..core.errors import RetrievalDegraded
from ..db.document_store import DocumentStore
from ..embeddings.embedder import Embedder

logger = logging.getLogger("docchat.retrieval")


class RetrievalService:
    """
    Similarity retrieval and name lookup scoped to a namespace.
    """

    def __init__(self, embedder: Embedder, store: DocumentStore) -> None:
        self._embedder = embedder
        self._store = store

    def _degraded(self, operation: str, exc: Exception) -> None:
        degraded = RetrievalDegraded(f"{operation} failed: {type(exc).__name__}: {exc}")
        logger.error("Retrieval degraded to empty result: %s", degraded, exc_info=exc)

    async def retrieve(
        self,
        namespace: str,
        query: Any,
        match_count: Optional[int] = None,
        min_similarity: Optional[float] = None,
    ) -> List[RetrievalMatch]:
        """
        Return chunks in `namespace` most similar to `query`.

        Parameters
        ----------
        namespace : str
            Namespace to search in; trimmed, must not be blank.

        query : Any
            Query text. Empty or non-string queries return no matches.

        match_count : Optional[int]
            Upper bound on returned matches. Defaults to settings.match_count.

        min_similarity : Optional[float]
            Hard similarity floor. Defaults to settings.min_similarity.

        Returns
        -------
        List[RetrievalMatch]
            Matches sorted by descending similarity.
        """
        trimmed_namespace = normalize_namespace(namespace)
        if not query or not isinstance(query, str):
            return []

        k = settings.match_count if match_count is None else match_count
        floor = settings.min_similarity if min_similarity is None else min_similarity
        if k <= 0:
            return []

        try:
            query_embedding = await self._embedder.embed_one(query)
            rows = await self._store.similarity_search(
                trimmed_namespace, query_embedding, k, floor
            )
        except Exception as exc:
            self._degraded("similarity search", exc)
            return []

        # The floor, ordering and cap hold regardless of what the store returns.
        matches = [row for row in rows if row.similarity >= floor]
        matches.sort(key=lambda match: match.similarity, reverse=True)
        return matches[:k]

    async def find_by_name(
        self,
        namespace: str,
        query: Optional[str],
        limit: Optional[int] = None,
    ) -> List[FileRecord]:
        """
        Documents in `namespace` whose name contains `query` (case-insensitive),
        newest first. A blank query returns nothing.
        """
        trimmed_namespace = normalize_namespace(namespace)
        term = query.strip() if isinstance(query, str) else ""
        if not term:
            return []

        try:
            return await self._store.find_documents_by_name(
                trimmed_namespace,
                term,
                settings.file_lookup_limit if limit is None else limit,
            )
        except Exception as exc:
            self._degraded("file name lookup", exc)
            return []

    async def list_files(
        self,
        namespace: str,
        limit: Optional[int] = None,
    ) -> List[FileRecord]:
        """Documents in `namespace`, newest first."""
        trimmed_namespace = normalize_namespace(namespace)
        try:
            return await self._store.list_documents(
                trimmed_namespace,
                settings.list_files_limit if limit is None else limit,
            )
        except Exception as exc:
            self._degraded("list files", exc)
            return []

    async def list_namespaces(self, limit: Optional[int] = None) -> List[str]:
        """Distinct non-blank namespaces that own documents, ascending."""
        try:
            rows = await self._store.list_distinct_namespaces(
                settings.namespace_list_limit if limit is None else limit
            )
        except Exception as exc:
            self._degraded("list namespaces", exc)
            return []

        seen = set()
        namespaces: List[str] = []
        for raw in rows:
            ns = raw.strip() if isinstance(raw, str) else ""
            if ns and ns not in seen:
                seen.add(ns)
                namespaces.append(ns)
        return namespaces
