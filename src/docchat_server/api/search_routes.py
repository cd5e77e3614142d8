"""
Search Routes

Exposes the retrieval service directly: the same similarity search the
conversation loop uses for grounding, for inspecting what a namespace
returns for a query.
"""

from fastapi import APIRouter, Depends, status
from typing import Annotated

from .models import SearchRequest, SearchResponse
from .dependencies import get_retrieval_service
from ..auth.security import require_scopes
from ..auth.models import Principal
from ..rag.retrieval import RetrievalService

router = APIRouter(prefix="/search", tags=["search"])


@router.post(
    "/",
    response_model=SearchResponse,
    summary="Similarity search within a namespace",
    status_code=status.HTTP_200_OK,
)
async def search(
    req: SearchRequest,
    principal: Annotated[Principal, Depends(require_scopes("search"))],
    retrieval: Annotated[RetrievalService, Depends(get_retrieval_service)],
) -> SearchResponse:
    """
    Return matches sorted by descending similarity, at most
    `match_count`, none below `min_similarity`.
    """
    matches = await retrieval.retrieve(
        req.namespace,
        req.query,
        match_count=req.match_count,
        min_similarity=req.min_similarity,
    )
    return SearchResponse(matches=matches)
