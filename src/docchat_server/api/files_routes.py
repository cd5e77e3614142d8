"""
File Routes

Endpoints for managing the document knowledge base:
- Uploading a text document into a namespace (chunk, embed, persist)
- Listing documents in a namespace
- Listing namespaces that own documents

Uploads accept plain text, markdown and JSON. Ingestion errors surface as
4xx/5xx responses with a descriptive message through the domain error
handler registered in `main.py`.
"""

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status
from typing import Annotated, Optional

from .dependencies import get_ingestion_service, get_retrieval_service
from .models import FileListResponse, NamespaceListResponse, UploadResponse
from ..auth.models import Principal
from ..auth.security import require_scopes
from ..config import settings
from ..rag.ingestion import IngestionService
from ..rag.retrieval import RetrievalService

router = APIRouter(tags=["files"])


@router.get(
    "/files",
    response_model=FileListResponse,
    summary="List documents in a namespace",
)
async def list_files(
    principal: Annotated[Principal, Depends(require_scopes("files:read"))],
    retrieval: Annotated[RetrievalService, Depends(get_retrieval_service)],
    namespace: Annotated[Optional[str], Query()] = None,
) -> FileListResponse:
    if not namespace or not namespace.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="namespace query param is required",
        )
    files = await retrieval.list_files(namespace, limit=settings.list_files_limit)
    return FileListResponse(files=files)


@router.post(
    "/files",
    response_model=UploadResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Upload and ingest a text document",
)
async def upload_file(
    principal: Annotated[Principal, Depends(require_scopes("files:write"))],
    ingestion: Annotated[IngestionService, Depends(get_ingestion_service)],
    file: Annotated[Optional[UploadFile], File()] = None,
    namespace: Annotated[Optional[str], Form()] = None,
    source_url: Annotated[Optional[str], Form()] = None,
) -> UploadResponse:
    """
    Ingest one uploaded document.

    `source_url`, when given, marks the document as URL-sourced.
    """
    if not namespace or not namespace.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Namespace is required",
        )

    if file is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="File is required",
        )

    content_type = file.content_type or ""
    if content_type not in settings.allowed_upload_types:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unsupported file type: {content_type}",
        )

    raw = await file.read()
    text = raw.decode("utf-8", errors="replace")
    if not text.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="File has no textual content",
        )

    source_url = source_url or None
    result = await ingestion.ingest(
        namespace=namespace,
        file_name=file.filename or "untitled",
        content=text,
        mime_type=content_type or "text/plain",
        size_bytes=len(raw),
        source_type="url" if source_url else "upload",
        source_url=source_url,
    )
    return UploadResponse(file=result.file, chunk_count=result.chunk_count)


@router.get(
    "/namespaces",
    response_model=NamespaceListResponse,
    summary="List namespaces that contain documents",
)
async def list_namespaces(
    principal: Annotated[Principal, Depends(require_scopes("files:read"))],
    retrieval: Annotated[RetrievalService, Depends(get_retrieval_service)],
    limit: Annotated[int, Query(ge=1, le=500)] = 100,
) -> NamespaceListResponse:
    return NamespaceListResponse(namespaces=await retrieval.list_namespaces(limit))
