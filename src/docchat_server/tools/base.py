"""
Tool Dispatch Layer

This module defines the central dispatch mechanism for all LLM-invoked tool
calls. It enforces:

- Explicit tool allow-listing
- Lenient argument parsing (malformed JSON degrades to no arguments)
- Namespace scoping: tools only ever see the conversation's active namespace
- Dependency injection for testability

No tool should be callable unless it is explicitly registered here, and no
registered tool mutates the document store.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Awaitable, Callable, Dict, List

from .definitions import TOOL_FIND_FILES_BY_NAME
from ..config import settings
from ..core.errors import ToolArgumentParseError, UnknownTool
from ..rag.retrieval import RetrievalService

logger = logging.getLogger("docchat.tools")


# ---------------------------------------------------------------------
# Tool Type Definitions
# ---------------------------------------------------------------------

ToolHandler = Callable[
    [Dict[str, Any], str, RetrievalService],
    Awaitable[Dict[str, Any]],
]


# ---------------------------------------------------------------------
# Argument Parsing
# ---------------------------------------------------------------------

def _decode_arguments(raw: Any) -> Dict[str, Any]:
    if isinstance(raw, dict):
        return raw
    try:
        parsed = json.loads(raw or "{}")
    except (TypeError, ValueError) as exc:
        raise ToolArgumentParseError(f"Invalid JSON arguments: {exc}") from exc
    if not isinstance(parsed, dict):
        raise ToolArgumentParseError("Tool arguments must be a JSON object.")
    return parsed


def parse_tool_arguments(raw: Any) -> Dict[str, Any]:
    """
    Parse a tool call's JSON argument string.

    Malformed or non-object JSON never fails the turn; it is logged and
    treated as empty arguments.
    """
    try:
        return _decode_arguments(raw)
    except ToolArgumentParseError as exc:
        logger.warning("Tool arguments degraded to {}: %s", exc)
        return {}


# ---------------------------------------------------------------------
# Tool Registry (AUTHORITATIVE)
# ---------------------------------------------------------------------

async def _handle_find_files_by_name(
    args: Dict[str, Any],
    namespace: str,
    retrieval: RetrievalService,
) -> Dict[str, Any]:
    query = args.get("name") or args.get("query") or ""
    if not isinstance(query, str):
        query = str(query)

    files = await retrieval.find_by_name(
        namespace,
        query,
        limit=settings.file_lookup_limit,
    )
    return {
        "query": query,
        "results": [f.model_dump(mode="json", exclude={"namespace"}) for f in files],
    }


TOOL_REGISTRY: Dict[str, ToolHandler] = {
    TOOL_FIND_FILES_BY_NAME: _handle_find_files_by_name,
}


def registered_tools() -> List[str]:
    return sorted(TOOL_REGISTRY)


# ---------------------------------------------------------------------
# Public Dispatch API
# ---------------------------------------------------------------------

async def dispatch_tool_call(
    tool_name: str,
    args: Dict[str, Any],
    namespace: str,
    retrieval: RetrievalService,
) -> Dict[str, Any]:
    """
    Dispatch a tool call requested by the LLM.

    Parameters
    ----------
    tool_name : str
        The symbolic tool name requested by the LLM.

    args : Dict[str, Any]
        Parsed JSON arguments for the tool.

    namespace : str
        Active namespace of the conversation; every tool is scoped to it.

    retrieval : RetrievalService
        Retrieval service instance (injected).

    Returns
    -------
    Dict[str, Any]
        Tool execution result, JSON-serializable.

    Raises
    ------
    UnknownTool
        If the tool name is not registered.
    """

    handler = TOOL_REGISTRY.get(tool_name)
    if not handler:
        raise UnknownTool(f"Unknown tool requested: {tool_name}")

    return await handler(args, namespace, retrieval)
