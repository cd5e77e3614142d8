"""
Bot Turn Handler

Handles one inbound text message for a conversation and produces the reply
text. Commands:

    /help                  command list
    /reset                 acknowledge a reset
    /namespace             show the current and available namespaces
    /namespace clear       unbind the namespace (also: reset)
    /namespace <name>      bind a namespace
    /files <query>         look up files by name in the active namespace

Anything else is a question answered by the conversation loop within the
active namespace. Every message for one conversation is handled to
completion under that conversation's lock. The history append after an
answer is a detached task: its failure is logged and never reaches the user,
and the next question for the same conversation waits for it before
reading history.
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Any, List, Optional, Set

from pydantic import BaseModel

from ..chat.conversation import ConversationLoop, TurnResult
from ..chat.messages import HistoryEntry
from ..chat.prompts import APOLOGY_ANSWER
from ..config import settings
from ..core.errors import InvalidNamespace, ModelCallError
from ..rag.models import FileRecord
from ..rag.retrieval import RetrievalService
from ..sessions.locks import ConversationLocks
from ..sessions.store import ChatStateStore, normalize_chat_id

logger = logging.getLogger("docchat.bot")

HELP_TEXT = (
    "Hi!\n"
    "Commands:\n"
    "/help – this help\n"
    "/reset – acknowledge reset\n"
    "/namespace <name> – choose the active knowledge namespace\n"
    "/namespace clear – remove the current namespace\n"
    "/files <query> – list files within the active namespace"
)

NOT_ALLOWED_TEXT = "This bot is not available in this chat."

# Strong references to detached history writes until they finish.
_background_tasks: Set[asyncio.Task] = set()


# ---------------------------------------------------------------------
# Command parsing
# ---------------------------------------------------------------------

def _command_regex(name: str) -> "re.Pattern[str]":
    return re.compile(rf"^/{name}(?:@\S+)?(?=\s|$)", re.IGNORECASE)


def matches_command(text: str, name: str) -> bool:
    return bool(_command_regex(name).match(text.strip()))


def strip_command_prefix(text: str, name: str) -> str:
    return _command_regex(name).sub("", text.strip(), count=1).strip()


def _bullets(items: List[str]) -> str:
    return "\n".join(f"• {item}" for item in items)


def format_file_line(record: FileRecord) -> str:
    size_kb = int(record.size_bytes / 1024 + 0.5) if record.size_bytes else 0
    size_label = f"{size_kb} KB" if size_kb else "unknown size"
    uploaded = record.created_at.date().isoformat() if record.created_at else "unknown date"
    return f"• {record.file_name}\n   ({size_label}, uploaded {uploaded})"


# ---------------------------------------------------------------------
# Reply
# ---------------------------------------------------------------------

class BotReply(BaseModel):
    text: str
    turn: Optional[TurnResult] = None


# ---------------------------------------------------------------------
# Handler
# ---------------------------------------------------------------------

class BotHandler:
    """
    Routes inbound text to a command or to the conversation loop.
    """

    def __init__(
        self,
        state: ChatStateStore,
        retrieval: RetrievalService,
        conversation: ConversationLoop,
        locks: ConversationLocks,
        allowed_chat_id: Optional[str] = None,
    ) -> None:
        self._state = state
        self._retrieval = retrieval
        self._conversation = conversation
        self._locks = locks
        self._allowed_chat_id = allowed_chat_id

    async def handle(self, chat_id: Any, text: str) -> BotReply:
        """
        Handle one inbound message and return the reply to deliver.
        """
        key = normalize_chat_id(chat_id)
        if self._allowed_chat_id is not None and key != str(self._allowed_chat_id):
            logger.warning("Rejected message from unauthorized chat %s", key)
            return BotReply(text=NOT_ALLOWED_TEXT)

        trimmed = text.strip()
        async with self._locks.hold(key):
            try:
                return await self._dispatch(key, trimmed)
            except ModelCallError as exc:
                logger.error("Model call failed for chat %s: %s", key, exc)
            except Exception:
                logger.exception("Turn failed for chat %s", key)
            return BotReply(text=APOLOGY_ANSWER)

    async def _dispatch(self, chat_id: str, text: str) -> BotReply:
        if not text or matches_command(text, "help"):
            return BotReply(text=HELP_TEXT)

        if matches_command(text, "reset"):
            return BotReply(text="Context cleared. Fire away!")

        if matches_command(text, "namespace"):
            return await self._namespace_command(chat_id, strip_command_prefix(text, "namespace"))

        namespace = await self._state.get_active_namespace(chat_id)
        if not namespace:
            return BotReply(text=await self._no_namespace_text())

        if matches_command(text, "files"):
            return await self._files_command(namespace, strip_command_prefix(text, "files"))

        return await self._answer(chat_id, namespace, text)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def _no_namespace_text(self) -> str:
        reply = "No namespace selected for this chat. Use /namespace <name> to choose one."
        available = await self._retrieval.list_namespaces(settings.namespace_list_limit)
        if available:
            reply += f"\nAvailable namespaces:\n{_bullets(available)}"
        return reply

    async def _namespace_command(self, chat_id: str, args: str) -> BotReply:
        if not args:
            current = await self._state.get_active_namespace(chat_id)
            available = await self._retrieval.list_namespaces(settings.namespace_list_limit)
            reply = (
                f"Current namespace: {current}"
                if current
                else "No namespace selected for this chat."
            )
            if available:
                reply += f"\n\nAvailable namespaces:\n{_bullets(available)}"
            reply += "\n\nUse /namespace <name> to switch or /namespace clear to reset."
            return BotReply(text=reply)

        if re.fullmatch(r"clear|reset", args, re.IGNORECASE):
            await self._state.clear_active_namespace(chat_id)
            return BotReply(
                text="Namespace cleared. Use /namespace <name> to pick a document context."
            )

        try:
            normalized = await self._state.set_active_namespace(chat_id, args)
        except InvalidNamespace as exc:
            return BotReply(text=f"Failed to set namespace: {exc}")
        return BotReply(
            text=(
                f"Namespace set to “{normalized}”. "
                "All answers will use this namespace until you change it."
            )
        )

    async def _files_command(self, namespace: str, query: str) -> BotReply:
        if not query:
            return BotReply(text="Usage: /files <partial file name>")

        files = await self._retrieval.find_by_name(
            namespace, query, limit=settings.file_lookup_limit
        )
        if not files:
            return BotReply(text=f"No files matching “{query}”.")

        lines = "\n".join(format_file_line(record) for record in files)
        return BotReply(text=f"Active namespace: {namespace}\n\nFound files:\n{lines}")

    # ------------------------------------------------------------------
    # Questions
    # ------------------------------------------------------------------

    async def _answer(self, chat_id: str, namespace: str, prompt: str) -> BotReply:
        # The previous turn's history write may still be in flight.
        await self._locks.settle(chat_id)
        history = await self._state.get_recent_history(chat_id, settings.history_limit)
        turn = await self._conversation.run(prompt, namespace, history)

        self._schedule_history_append(
            chat_id,
            [
                HistoryEntry(role="user", content=prompt),
                HistoryEntry(role="assistant", content=turn.answer),
            ],
        )
        return BotReply(text=turn.answer, turn=turn)

    def _schedule_history_append(self, chat_id: str, entries: List[HistoryEntry]) -> None:
        task = asyncio.create_task(self._append_history(chat_id, entries))
        _background_tasks.add(task)
        task.add_done_callback(_background_tasks.discard)
        self._locks.defer(chat_id, task)

    async def _append_history(self, chat_id: str, entries: List[HistoryEntry]) -> None:
        try:
            await self._state.append_history(
                chat_id, entries, retain=settings.history_retain
            )
        except Exception:
            logger.exception("History append failed for chat %s", chat_id)


async def drain_background_tasks() -> None:
    """Wait for pending history writes. Used at shutdown and in tests."""
    if _background_tasks:
        await asyncio.gather(*list(_background_tasks), return_exceptions=True)
