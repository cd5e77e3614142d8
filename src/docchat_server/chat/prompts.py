"""
Prompt text for the conversation loop.
"""

from __future__ import annotations

from typing import Optional, Sequence

from .messages import SystemMessage
from ..rag.models import RetrievalMatch

SYSTEM_PROMPT = (
    "You are a helpful assistant powering a chat bot over a document knowledge base. "
    "Respect the active namespace context and cite file names when using retrieved snippets. "
    "If you cannot find relevant context, answer from general knowledge but mention the limitation."
)

# Placeholder answer when the model produces nothing usable.
EMPTY_ANSWER = "…"

APOLOGY_ANSWER = "Sorry, I couldn't produce an answer right now. Please try again in a moment."


def format_match(match: RetrievalMatch) -> str:
    file_name = match.file.file_name or "unknown-file"
    namespace = match.file.namespace or "unknown"
    return (
        f"File: {file_name} [namespace: {namespace}] "
        f"(similarity {match.similarity:.3f})\n{match.content}"
    )


def build_context_message(matches: Sequence[RetrievalMatch]) -> Optional[SystemMessage]:
    """System message summarizing retrieved chunks, or None without matches."""
    if not matches:
        return None
    body = "\n\n".join(format_match(match) for match in matches)
    return SystemMessage(content=f"Context retrieved from knowledge base:\n\n{body}")
