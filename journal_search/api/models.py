"""Pydantic request/response schemas for the Journal Search API."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from journal_search.ingestion.embeddings import ModelLifecycle
from journal_search.retrieval.models import SearchResult


class SearchRequest(BaseModel):
    """Request body for the /api/search endpoint."""

    query: str
    limit: int | None = Field(default=None, ge=1, le=100)
    snippet_length: int = Field(default=200, ge=10, le=2000)


class SearchResultItem(BaseModel):
    """A single fused search hit with its scores."""

    recording_id: str
    title: str
    timestamp: datetime | None = None
    tags: list[str] = []
    snippet: str
    matched_field: str | None = None
    matched_fields: list[str] = []
    rrf_score: float
    vector_score: float | None = None
    keyword_score: float | None = None
    is_both_match: bool = False
    relevance: str

    @classmethod
    def from_result(cls, result: SearchResult, snippet_length: int) -> SearchResultItem:
        recording = result.recording
        return cls(
            recording_id=recording.id,
            title=recording.title,
            timestamp=recording.timestamp,
            tags=list(recording.tags),
            snippet=result.snippet(snippet_length),
            matched_field=result.matched_field,
            matched_fields=sorted(result.matched_fields),
            rrf_score=result.rrf_score,
            vector_score=result.vector_score,
            keyword_score=result.keyword_score,
            is_both_match=result.is_both_match,
            relevance=result.relevance_label,
        )


class SearchResponse(BaseModel):
    """Response body for the /api/search endpoint."""

    query: str
    results: list[SearchResultItem]


class SyncResponse(BaseModel):
    """Response body for the /api/index/sync endpoint."""

    indexed: int
    removed: int
    unchanged: int
    failed: int
    pending: int


class ModelStatusResponse(BaseModel):
    """Embedding model lifecycle state for the /api/index/model endpoints."""

    status: str
    progress: float
    error: str | None = None

    @classmethod
    def from_lifecycle(cls, lifecycle: ModelLifecycle) -> ModelStatusResponse:
        return cls(status=str(lifecycle.status), progress=lifecycle.progress, error=lifecycle.error)


class IndexStatsResponse(BaseModel):
    """Response body for the /api/index/stats endpoint."""

    vector_store: dict[str, Any]
    keyword_index: dict[str, Any]
    status: str
    progress: float
    error: str | None = None
