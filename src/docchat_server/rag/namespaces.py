"""
Namespace Normalization

A namespace is a free-text, case-sensitive grouping key shared by documents
and conversation state. Two namespaces are equal when they are equal after
trimming; blank is invalid.
"""

from __future__ import annotations

from typing import Any

from ..core.errors import InvalidNamespace


def normalize_namespace(namespace: Any) -> str:
    """
    Return the trimmed namespace.

    Raises
    ------
    InvalidNamespace
        If the value is not a string or is blank after trimming.
    """
    if not namespace or not isinstance(namespace, str):
        raise InvalidNamespace("Namespace is required for RAG operations")
    trimmed = namespace.strip()
    if not trimmed:
        raise InvalidNamespace("Namespace must not be empty")
    return trimmed
