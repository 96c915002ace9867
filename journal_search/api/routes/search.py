"""Search endpoint: hybrid retrieval over journal recordings."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from journal_search.api.dependencies import get_search_service
from journal_search.api.models import SearchRequest, SearchResponse, SearchResultItem
from journal_search.errors import SearchError
from journal_search.retrieval.search import HybridSearchService

router = APIRouter()


@router.post("/api/search", response_model=SearchResponse)
async def search(
    request: SearchRequest,
    service: HybridSearchService = Depends(get_search_service),
) -> SearchResponse:
    """Run vector and keyword search and return the fused ranking.

    A failure of one source degrades to the other; only a failure of both
    is reported, as 503.
    """
    try:
        results = await service.search(request.query, limit=request.limit)
    except SearchError as exc:
        raise HTTPException(status_code=503, detail=f"Search unavailable: {exc}") from exc

    return SearchResponse(
        query=request.query,
        results=[SearchResultItem.from_result(r, request.snippet_length) for r in results],
    )
