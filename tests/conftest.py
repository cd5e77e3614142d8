"""
Shared test doubles for the RAG pipeline collaborators.

- FakeEmbedder: deterministic letter-frequency vectors, so identical texts
  have cosine similarity 1.0.
- FakeDocumentStore: in-memory documents/chunks with transaction semantics
  (writes are pending until commit, discarded on rollback).
- ScriptedLLM: returns queued chat-model replies and records each request.
"""

import copy
import math
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest

from docchat_server.core.errors import EmbeddingError, PersistenceError
from docchat_server.rag.models import ChunkRecord, DocumentMetadata, FileRecord, RetrievalMatch


def letter_vector(text: str) -> List[float]:
    counts = [0.0] * 27
    for ch in text.lower():
        if "a" <= ch <= "z":
            counts[ord(ch) - ord("a")] += 1.0
        else:
            counts[26] += 0.1
    return counts


def cosine(a: List[float], b: List[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    na = math.sqrt(sum(x * x for x in a))
    nb = math.sqrt(sum(y * y for y in b))
    if not na or not nb:
        return 0.0
    return dot / (na * nb)


class FakeEmbedder:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.calls: List[List[str]] = []

    async def embed(self, texts):
        self.calls.append(list(texts))
        if self.fail:
            raise EmbeddingError("Embedding generation failed: ConnectError")
        return [letter_vector(t) for t in texts]

    async def embed_one(self, text):
        [vector] = await self.embed([text])
        return vector


class FakeDocumentStore:
    def __init__(self) -> None:
        self.files: List[FileRecord] = []
        self.chunks: List[tuple] = []  # (file_id, ChunkRecord)
        self._pending_files: List[FileRecord] = []
        self._pending_chunks: List[tuple] = []
        self._next_id = 1
        self.fail_chunk_insert = False
        self.fail_queries = False
        self.commits = 0
        self.rollbacks = 0
        self.writes = 0

    # writes ---------------------------------------------------------------

    async def insert_document(self, metadata: DocumentMetadata) -> FileRecord:
        self.writes += 1
        record = FileRecord(
            id=self._next_id,
            created_at=datetime(2024, 1, 1, tzinfo=timezone.utc) + timedelta(minutes=self._next_id),
            **metadata.model_dump(),
        )
        self._next_id += 1
        self._pending_files.append(record)
        return record

    async def insert_chunks(self, file_id: int, chunks) -> int:
        self.writes += 1
        if self.fail_chunk_insert:
            raise PersistenceError("Failed to insert chunks: IntegrityError")
        self._pending_chunks.extend((file_id, chunk) for chunk in chunks)
        return len(chunks)

    async def commit(self) -> None:
        self.commits += 1
        self.files.extend(self._pending_files)
        self.chunks.extend(self._pending_chunks)
        self._pending_files, self._pending_chunks = [], []

    async def rollback(self) -> None:
        self.rollbacks += 1
        self._pending_files, self._pending_chunks = [], []

    # queries --------------------------------------------------------------

    def _check(self) -> None:
        if self.fail_queries:
            raise RuntimeError("connection refused")

    def _file(self, file_id: int) -> FileRecord:
        return next(f for f in self.files if f.id == file_id)

    async def similarity_search(self, namespace, query_embedding, k, min_similarity):
        self._check()
        scored = []
        for file_id, chunk in self.chunks:
            record = self._file(file_id)
            if record.namespace != namespace:
                continue
            score = cosine(query_embedding, chunk.embedding)
            if score >= min_similarity:
                scored.append(RetrievalMatch(content=chunk.content, similarity=score, file=record))
        scored.sort(key=lambda m: m.similarity, reverse=True)
        return scored[:k]

    async def find_documents_by_name(self, namespace, term, limit):
        self._check()
        hits = [
            f for f in self.files
            if f.namespace == namespace and term.lower() in f.file_name.lower()
        ]
        hits.sort(key=lambda f: f.created_at, reverse=True)
        return hits[:limit]

    async def list_documents(self, namespace, limit):
        self._check()
        hits = [f for f in self.files if f.namespace == namespace]
        hits.sort(key=lambda f: f.created_at, reverse=True)
        return hits[:limit]

    async def list_distinct_namespaces(self, limit):
        self._check()
        return sorted({f.namespace for f in self.files})[:limit]

    # helpers --------------------------------------------------------------

    def add_file(self, namespace: str, file_name: str, content: str = "", size_bytes: int = 2048) -> FileRecord:
        """Directly seed a committed document (with one chunk when content is given)."""
        record = FileRecord(
            id=self._next_id,
            namespace=namespace,
            file_name=file_name,
            size_bytes=size_bytes,
            tokens=1,
            created_at=datetime(2024, 1, 1, tzinfo=timezone.utc) + timedelta(minutes=self._next_id),
        )
        self._next_id += 1
        self.files.append(record)
        if content:
            self.chunks.append(
                (
                    record.id,
                    ChunkRecord(
                        chunk_index=0,
                        content=content,
                        embedding=letter_vector(content),
                        token_count=1,
                    ),
                )
            )
        return record


class ScriptedLLM:
    def __init__(self, responses: Optional[List[Any]] = None) -> None:
        self.responses = list(responses or [])
        self.requests: List[Dict[str, Any]] = []

    async def complete(self, messages, tools=None):
        self.requests.append({"messages": copy.deepcopy(messages), "tools": tools})
        if not self.responses:
            return {"role": "assistant", "content": "done"}
        reply = self.responses.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


def text_reply(content: Optional[str]) -> Dict[str, Any]:
    return {"role": "assistant", "content": content}


def tool_reply(*calls: tuple) -> Dict[str, Any]:
    """calls: (call_id, tool_name, arguments_json)"""
    return {
        "role": "assistant",
        "content": None,
        "tool_calls": [
            {"id": call_id, "type": "function", "function": {"name": name, "arguments": args}}
            for call_id, name, args in calls
        ],
    }


@pytest.fixture
def embedder():
    return FakeEmbedder()


@pytest.fixture
def store():
    return FakeDocumentStore()
