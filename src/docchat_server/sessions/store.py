"""
Chat State Store

Per-conversation state: the active namespace binding and a rolling
history of past turns. This module defines the interface shared by all
backends and the in-memory implementation.

Design choices
--------------
- Conversation ids are normalized with `str()` so integer chat ids from the
  messaging platform and string ids from the API address the same state.
- Namespaces are trimmed and validated before being stored.
- History entries are sanitized on append and pruned to the `retain` most
  recent entries afterwards.
- The in-memory store is thread-safe (re-entrant lock) and copy-on-read.
  Nothing survives a process restart; `DatabaseChatStateStore` in
  `db_store.py` exposes the same interface backed by PostgreSQL.
"""

from __future__ import annotations

from threading import RLock
from typing import Any, Dict, List, Optional, Sequence

from ..chat.messages import HistoryEntry, sanitize_history
from ..rag.namespaces import normalize_namespace

DEFAULT_HISTORY_RETAIN = 40
DEFAULT_HISTORY_LIMIT = 10


def normalize_chat_id(chat_id: Any) -> str:
    if chat_id is None:
        raise ValueError("chat_id is required")
    return str(chat_id)


class ChatStateStore:
    """
    Interface for conversation state backends.
    """

    async def get_active_namespace(self, chat_id: Any) -> Optional[str]:
        raise NotImplementedError

    async def set_active_namespace(self, chat_id: Any, namespace: str) -> str:
        """Bind `namespace` (trimmed) to the conversation; returns the stored value."""
        raise NotImplementedError

    async def clear_active_namespace(self, chat_id: Any) -> None:
        raise NotImplementedError

    async def append_history(
        self,
        chat_id: Any,
        entries: Sequence[Any],
        retain: int = DEFAULT_HISTORY_RETAIN,
    ) -> None:
        raise NotImplementedError

    async def get_recent_history(
        self,
        chat_id: Any,
        limit: int = DEFAULT_HISTORY_LIMIT,
    ) -> List[HistoryEntry]:
        """Most recent `limit` entries, oldest first."""
        raise NotImplementedError


class InMemoryChatStateStore(ChatStateStore):
    """
    In-memory store mapping conversation ids to a namespace and a history.
    """

    def __init__(self) -> None:
        self._namespaces: Dict[str, str] = {}
        # Lists are append-only, so list order is creation order.
        self._history: Dict[str, List[HistoryEntry]] = {}
        self._lock = RLock()

    # ------------------------------------------------------------------
    # Namespace binding
    # ------------------------------------------------------------------

    async def get_active_namespace(self, chat_id: Any) -> Optional[str]:
        with self._lock:
            return self._namespaces.get(normalize_chat_id(chat_id))

    async def set_active_namespace(self, chat_id: Any, namespace: str) -> str:
        normalized = normalize_namespace(namespace)
        with self._lock:
            self._namespaces[normalize_chat_id(chat_id)] = normalized
        return normalized

    async def clear_active_namespace(self, chat_id: Any) -> None:
        with self._lock:
            self._namespaces.pop(normalize_chat_id(chat_id), None)

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    async def append_history(
        self,
        chat_id: Any,
        entries: Sequence[Any],
        retain: int = DEFAULT_HISTORY_RETAIN,
    ) -> None:
        """
        Append sanitized entries in order, then keep only the `retain` most
        recent. A non-positive `retain` disables pruning.
        """
        key = normalize_chat_id(chat_id)
        sanitized = sanitize_history(list(entries))
        if not sanitized:
            return

        with self._lock:
            history = self._history.setdefault(key, [])
            history.extend(sanitized)

            if retain > 0:
                excess = len(history) - retain
                if excess > 0:
                    self._history[key] = history[excess:]

    async def get_recent_history(
        self,
        chat_id: Any,
        limit: int = DEFAULT_HISTORY_LIMIT,
    ) -> List[HistoryEntry]:
        if limit <= 0:
            return []
        with self._lock:
            history = self._history.get(normalize_chat_id(chat_id), [])
            return list(history[-limit:])

    # ------------------------------------------------------------------
    # Utility operations
    # ------------------------------------------------------------------

    def history_size(self, chat_id: Any) -> int:
        """Number of stored entries for a conversation."""
        with self._lock:
            return len(self._history.get(normalize_chat_id(chat_id), []))

    def clear_all(self) -> None:
        """
        Remove all state. Intended for test setup/teardown.
        """
        with self._lock:
            self._namespaces.clear()
            self._history.clear()
