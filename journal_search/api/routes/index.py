"""Index maintenance endpoints: sync, full reindex, stats and model readiness."""

from __future__ import annotations

import logging
from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException

from journal_search.api.dependencies import get_embedding_service, get_index_service
from journal_search.api.models import IndexStatsResponse, ModelStatusResponse, SyncResponse
from journal_search.errors import ModelNotReadyError
from journal_search.ingestion.embeddings import EmbeddingService, ensure_ready
from journal_search.ingestion.pipeline import SearchIndexService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/api/index/sync", response_model=SyncResponse)
async def sync_index(service: SearchIndexService = Depends(get_index_service)) -> SyncResponse:
    """Bring both indexes up to date with the record store."""
    report = await service.sync_indexes()
    return SyncResponse(**asdict(report))


@router.post("/api/index/reindex", response_model=SyncResponse)
async def reindex(
    service: SearchIndexService = Depends(get_index_service),
    embedding_service: EmbeddingService = Depends(get_embedding_service),
) -> SyncResponse:
    """Clear and rebuild everything. Refused while the embedding model is not ready."""
    try:
        ensure_ready(embedding_service)
    except ModelNotReadyError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    report = await service.force_full_reindex()
    return SyncResponse(**asdict(report))


@router.get("/api/index/stats", response_model=IndexStatsResponse)
async def index_stats(service: SearchIndexService = Depends(get_index_service)) -> IndexStatsResponse:
    return IndexStatsResponse(**await service.get_stats())


@router.get("/api/index/model", response_model=ModelStatusResponse)
async def model_status(
    embedding_service: EmbeddingService = Depends(get_embedding_service),
) -> ModelStatusResponse:
    return ModelStatusResponse.from_lifecycle(embedding_service.lifecycle)


@router.post("/api/index/model/download", response_model=ModelStatusResponse)
async def download_model(
    embedding_service: EmbeddingService = Depends(get_embedding_service),
) -> ModelStatusResponse:
    """Prepare the embedding model; 502 if the backend cannot be reached."""
    try:
        await embedding_service.download_model()
    except Exception as exc:
        logger.exception("Embedding model preparation failed")
        raise HTTPException(status_code=502, detail=f"Model preparation failed: {exc}") from exc
    return ModelStatusResponse.from_lifecycle(embedding_service.lifecycle)
