"""
Database Chat State Store

PostgreSQL-backed implementation of `ChatStateStore`. Each operation opens
its own short-lived session from the injected factory, so the store can be
used from detached background tasks after the request session is gone.
"""

from __future__ import annotations

import logging
from typing import Any, List, Optional, Sequence

from sqlalchemy import delete, func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .store import (
    DEFAULT_HISTORY_LIMIT,
    DEFAULT_HISTORY_RETAIN,
    ChatStateStore,
    normalize_chat_id,
)
from ..chat.messages import HistoryEntry, sanitize_history
from ..db.models import ChatHistoryEntry, ChatNamespace
from ..rag.namespaces import normalize_namespace

logger = logging.getLogger("docchat.sessions")


class DatabaseChatStateStore(ChatStateStore):
    """
    Namespace bindings in `rag_chat_namespaces`, history in `rag_chat_history`.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    # ------------------------------------------------------------------
    # Namespace binding
    # ------------------------------------------------------------------

    async def get_active_namespace(self, chat_id: Any) -> Optional[str]:
        key = normalize_chat_id(chat_id)
        async with self._session_factory() as session:
            result = await session.execute(
                select(ChatNamespace.namespace).where(ChatNamespace.chat_id == key)
            )
            return result.scalar_one_or_none()

    async def set_active_namespace(self, chat_id: Any, namespace: str) -> str:
        key = normalize_chat_id(chat_id)
        normalized = normalize_namespace(namespace)

        # Upsert; last writer wins.
        stmt = pg_insert(ChatNamespace).values(
            chat_id=key,
            namespace=normalized,
        ).on_conflict_do_update(
            index_elements=[ChatNamespace.chat_id],
            set_={"namespace": normalized, "updated_at": func.now()},
        )
        async with self._session_factory() as session:
            await session.execute(stmt)
            await session.commit()
        return normalized

    async def clear_active_namespace(self, chat_id: Any) -> None:
        key = normalize_chat_id(chat_id)
        async with self._session_factory() as session:
            await session.execute(
                delete(ChatNamespace).where(ChatNamespace.chat_id == key)
            )
            await session.commit()

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
        Insert sanitized entries, then delete everything older than the
        `retain` most recent rows (creation time, then id).
        """
        key = normalize_chat_id(chat_id)
        sanitized = sanitize_history(list(entries))
        if not sanitized:
            return

        async with self._session_factory() as session:
            session.add_all(
                [
                    ChatHistoryEntry(chat_id=key, role=entry.role, content=entry.content)
                    for entry in sanitized
                ]
            )
            await session.flush()

            if retain > 0:
                stale = await session.execute(
                    select(ChatHistoryEntry.id)
                    .where(ChatHistoryEntry.chat_id == key)
                    .order_by(ChatHistoryEntry.created_at.desc(), ChatHistoryEntry.id.desc())
                    .offset(retain)
                )
                stale_ids = [row[0] for row in stale.all()]
                if stale_ids:
                    await session.execute(
                        delete(ChatHistoryEntry).where(ChatHistoryEntry.id.in_(stale_ids))
                    )
                    logger.debug("Pruned %d history rows for chat %s", len(stale_ids), key)

            await session.commit()

    async def get_recent_history(
        self,
        chat_id: Any,
        limit: int = DEFAULT_HISTORY_LIMIT,
    ) -> List[HistoryEntry]:
        if limit <= 0:
            return []
        key = normalize_chat_id(chat_id)
        async with self._session_factory() as session:
            result = await session.execute(
                select(ChatHistoryEntry.role, ChatHistoryEntry.content)
                .where(ChatHistoryEntry.chat_id == key)
                .order_by(ChatHistoryEntry.created_at.desc(), ChatHistoryEntry.id.desc())
                .limit(limit)
            )
            rows = result.all()

        # Newest-first from the query; callers want oldest-first.
        return sanitize_history(
            [{"role": row.role, "content": row.content} for row in reversed(rows)]
        )
