"""
Error Taxonomy and Global Error Handling

This module defines the exception hierarchy shared by the ingestion,
retrieval and conversation layers, plus the FastAPI handlers that turn those
exceptions into HTTP responses.

Design Goals
------------
- Ingestion failures are fatal to the call and carry a descriptive message
- Conversation-turn failures are absorbed by the callers that raise them
- Never leak internal exception details for unexpected errors
- Log full stack traces internally for debugging
"""

from __future__ import annotations

import logging
from typing import Dict, Any

from fastapi import Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger("docchat.errors")


# ---------------------------------------------------------------------
# Exception Taxonomy
# ---------------------------------------------------------------------

class DocChatError(RuntimeError):
    """Base class for all domain errors raised by the service."""


class InvalidNamespace(DocChatError, ValueError):
    """Raised when a namespace is missing, not a string, or blank after trimming."""


class EmptyContent(DocChatError, ValueError):
    """Raised when a document has no content to ingest."""


class EmptyAfterPreprocessing(DocChatError, ValueError):
    """Raised when chunking a non-empty document yields no chunks."""


class EmbeddingError(DocChatError):
    """Raised when embedding generation fails."""


class PersistenceError(DocChatError):
    """Raised when the document store rejects a write."""


class RetrievalDegraded(DocChatError):
    """Store or query failure during retrieval. Logged, never propagated."""


class ToolArgumentParseError(DocChatError, ValueError):
    """Malformed tool-call arguments. Degrades to empty arguments."""


class UnknownTool(DocChatError, LookupError):
    """The model requested a tool that is not declared."""


class ModelResponseEmpty(DocChatError):
    """The model returned no message or no content."""


class ModelCallError(DocChatError):
    """The chat model request failed outright."""


# ---------------------------------------------------------------------
# Public Exception Handlers
# ---------------------------------------------------------------------

_STATUS_BY_ERROR = (
    (InvalidNamespace, status.HTTP_400_BAD_REQUEST, "invalid_namespace"),
    (EmptyContent, status.HTTP_400_BAD_REQUEST, "empty_content"),
    (EmptyAfterPreprocessing, status.HTTP_400_BAD_REQUEST, "empty_after_preprocessing"),
    (EmbeddingError, status.HTTP_502_BAD_GATEWAY, "embedding_error"),
    (ModelCallError, status.HTTP_502_BAD_GATEWAY, "model_error"),
    (PersistenceError, status.HTTP_500_INTERNAL_SERVER_ERROR, "persistence_error"),
)


async def domain_exception_handler(
    request: Request,
    exc: DocChatError,
) -> JSONResponse:
    """
    Render a DocChatError as a JSON error with a descriptive message.

    Domain errors carry messages written for the caller (e.g. "Namespace must
    not be empty"), so unlike the catch-all handler the detail is returned.
    """
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_code = "domain_error"
    for error_type, code, name in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            status_code, error_code = code, name
            break

    if status_code >= 500:
        logger.error(
            "Domain error during request %s %s: %s",
            request.method,
            request.url.path,
            exc,
        )

    return JSONResponse(
        status_code=status_code,
        content={"error": error_code, "detail": str(exc)},
    )


async def unhandled_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """
    Catch-all handler for uncaught exceptions.

    Behavior
    --------
    - Logs the full exception stack trace for internal diagnostics.
    - Returns a generic 500 error to the client with no internal details.
    """

    # Log full traceback internally (never returned to client)
    logger.exception(
        "Unhandled exception during request: %s %s",
        request.method,
        request.url.path,
        exc_info=exc,
    )

    payload: Dict[str, Any] = {
        "error": "internal_server_error",
        "detail": "Internal server error",
    }

    return JSONResponse(
        status_code=500,
        content=payload,
    )
