"""
Conversation Transcript Models

The transcript of one turn is a list of tagged messages discriminated on
`role`: system, user, assistant (optionally requesting tool calls) and tool
results keyed to a specific call id. Each message renders itself to the
chat-completions wire format with `to_llm()`.

`HistoryEntry` is the persisted form of a past turn: only `user` and
`assistant` roles survive into history.
"""

from __future__ import annotations

from typing import Annotated, Any, Dict, Iterable, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------
# Tool Calls
# ---------------------------------------------------------------------

class ToolFunction(BaseModel):
    name: str = ""
    arguments: Optional[str] = "{}"

    model_config = ConfigDict(extra="ignore")


class ToolCall(BaseModel):
    """
    A structured request from the model to invoke a declared tool.
    """
    id: str = ""
    type: str = "function"
    function: ToolFunction = Field(default_factory=ToolFunction)

    model_config = ConfigDict(extra="ignore")


# ---------------------------------------------------------------------
# Transcript Messages
# ---------------------------------------------------------------------

class SystemMessage(BaseModel):
    role: Literal["system"] = "system"
    content: str

    def to_llm(self) -> Dict[str, Any]:
        return {"role": self.role, "content": self.content}


class UserMessage(BaseModel):
    role: Literal["user"] = "user"
    content: str

    def to_llm(self) -> Dict[str, Any]:
        return {"role": self.role, "content": self.content}


class AssistantMessage(BaseModel):
    role: Literal["assistant"] = "assistant"
    content: Optional[str] = None
    tool_calls: List[ToolCall] = Field(default_factory=list)

    model_config = ConfigDict(extra="ignore")

    @classmethod
    def from_llm(cls, raw: Dict[str, Any]) -> "AssistantMessage":
        """Parse the message dict returned by the chat model."""
        return cls(
            content=raw.get("content"),
            tool_calls=[ToolCall.model_validate(tc) for tc in raw.get("tool_calls") or []],
        )

    def to_llm(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"role": self.role, "content": self.content}
        if self.tool_calls:
            payload["tool_calls"] = [tc.model_dump() for tc in self.tool_calls]
        return payload


class ToolResultMessage(BaseModel):
    role: Literal["tool"] = "tool"
    tool_call_id: str
    content: str

    def to_llm(self) -> Dict[str, Any]:
        return {
            "role": self.role,
            "tool_call_id": self.tool_call_id,
            "content": self.content,
        }


TranscriptMessage = Annotated[
    Union[SystemMessage, UserMessage, AssistantMessage, ToolResultMessage],
    Field(discriminator="role"),
]


def transcript_to_llm(messages: Iterable[TranscriptMessage]) -> List[Dict[str, Any]]:
    return [message.to_llm() for message in messages]


# ---------------------------------------------------------------------
# Persistent History
# ---------------------------------------------------------------------

class HistoryEntry(BaseModel):
    """
    One stored turn of a conversation.
    """
    role: Literal["user", "assistant"]
    content: str = Field(..., min_length=1)

    model_config = ConfigDict(frozen=True)

    def to_message(self) -> Union[UserMessage, AssistantMessage]:
        if self.role == "assistant":
            return AssistantMessage(content=self.content)
        return UserMessage(content=self.content)


def _field(item: Any, name: str) -> Any:
    if isinstance(item, dict):
        return item.get(name)
    return getattr(item, name, None)


def sanitize_history(items: Any) -> List[HistoryEntry]:
    """
    Coerce arbitrary history items into valid entries.

    Items without string `role` and `content` are dropped, any role other
    than `assistant` becomes `user`, content is trimmed and empty entries
    are dropped. Order is preserved.
    """
    if not isinstance(items, (list, tuple)):
        return []

    entries: List[HistoryEntry] = []
    for item in items:
        role = _field(item, "role")
        content = _field(item, "content")
        if not isinstance(role, str) or not isinstance(content, str):
            continue
        content = content.strip()
        if not content:
            continue
        entries.append(
            HistoryEntry(
                role="assistant" if role == "assistant" else "user",
                content=content,
            )
        )
    return entries
