"""
API Models

This module defines the Pydantic models used for request/response
validation across the file, search, chat and webhook endpoints.

Design Goals
------------
- Strong typing
- Safe defaults (no shared mutable state)
- Inbound platform payloads tolerate unknown fields; our own requests do not
"""

from __future__ import annotations

from typing import List, Optional, Union

from pydantic import BaseModel, Field, ConfigDict

from ..chat.conversation import ToolInvocation
from ..rag.models import FileRecord, RetrievalMatch


# ---------------------------------------------------------------------
# File Models
# ---------------------------------------------------------------------

class FileListResponse(BaseModel):
    files: List[FileRecord]


class NamespaceListResponse(BaseModel):
    namespaces: List[str]


class UploadResponse(BaseModel):
    """
    Result of ingesting one uploaded document.
    """
    file: FileRecord
    chunk_count: int = Field(..., ge=1)


# ---------------------------------------------------------------------
# Search Models
# ---------------------------------------------------------------------

class SearchRequest(BaseModel):
    """
    Similarity search request scoped to one namespace.
    """
    namespace: str = Field(..., min_length=1)
    query: str = Field(..., min_length=1)
    match_count: int = Field(default=6, ge=1, le=50)
    min_similarity: float = Field(default=0.3, ge=-1.0, le=1.0)

    model_config = ConfigDict(extra="forbid")


class SearchResponse(BaseModel):
    matches: List[RetrievalMatch]


# ---------------------------------------------------------------------
# Chat Models
# ---------------------------------------------------------------------

class ChatRequest(BaseModel):
    """
    Direct chat request: one message for one conversation.
    """
    chat_id: Union[int, str]
    message: str = Field(..., min_length=1)

    model_config = ConfigDict(extra="forbid")


class ChatResponse(BaseModel):
    """
    Reply text plus, for answered questions, the grounding used.
    """
    answer: str
    context: List[RetrievalMatch] = Field(default_factory=list)
    tool_results: List[ToolInvocation] = Field(default_factory=list)


# ---------------------------------------------------------------------
# Messaging Webhook Models
# ---------------------------------------------------------------------

class TelegramChat(BaseModel):
    id: int

    model_config = ConfigDict(extra="ignore")


class TelegramMessage(BaseModel):
    message_id: int
    chat: TelegramChat
    text: Optional[str] = None

    model_config = ConfigDict(extra="ignore")


class TelegramUpdate(BaseModel):
    update_id: Optional[int] = None
    message: Optional[TelegramMessage] = None
    channel_post: Optional[TelegramMessage] = None

    model_config = ConfigDict(extra="ignore")

    @property
    def effective_message(self) -> Optional[TelegramMessage]:
        return self.message or self.channel_post


class WebhookReply(BaseModel):
    """
    Reply delivered in the webhook response body; the platform performs the
    `sendMessage` call on our behalf.
    """
    method: str = "sendMessage"
    chat_id: int
    text: str
    reply_to_message_id: Optional[int] = None
