"""
Per-conversation serialization.

Turns for the same conversation id run one at a time so namespace reads and
writes and history appends from rapid duplicate messages cannot interleave.
Different conversations never wait on each other.

A turn's history write runs detached, after its reply has been produced.
The registry remembers that write so the next turn for the conversation can
wait for it (`settle`) before reading history.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict

from .store import normalize_chat_id


class ConversationLocks:
    """
    Registry of `asyncio.Lock` objects keyed by conversation id.

    Locks are created on first use and dropped when no task holds or awaits
    them, so the registry does not grow with every conversation ever seen.
    """

    def __init__(self) -> None:
        self._locks: Dict[str, asyncio.Lock] = {}
        self._waiters: Dict[str, int] = {}
        self._pending: Dict[str, asyncio.Task] = {}

    @asynccontextmanager
    async def hold(self, chat_id: Any) -> AsyncIterator[None]:
        key = normalize_chat_id(chat_id)
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                del self._waiters[key]
                del self._locks[key]

    # ------------------------------------------------------------------
    # Deferred writes
    # ------------------------------------------------------------------

    def defer(self, chat_id: Any, task: asyncio.Task) -> None:
        """Record `task` as the conversation's outstanding history write."""
        key = normalize_chat_id(chat_id)
        self._pending[key] = task
        task.add_done_callback(lambda done: self._forget(key, done))

    def _forget(self, key: str, task: asyncio.Task) -> None:
        if self._pending.get(key) is task:
            del self._pending[key]

    async def settle(self, chat_id: Any) -> None:
        """
        Wait for the conversation's outstanding history write, if any.
        The write logs its own failures; they are not re-raised here.
        """
        task = self._pending.get(normalize_chat_id(chat_id))
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    def pending(self, chat_id: Any) -> bool:
        return normalize_chat_id(chat_id) in self._pending

    def __len__(self) -> int:
        return len(self._locks)
