import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from journal_search.api.dependencies import get_embedding_service, get_index_service
from journal_search.api.routes.index import router as index_router
from journal_search.api.routes.search import router as search_router
from journal_search.ingestion.embeddings import EmbeddingService
from journal_search.ingestion.pipeline import SearchIndexService

logger = logging.getLogger(__name__)


async def warm_up(embedding_service: EmbeddingService, index_service: SearchIndexService) -> None:
    """Prepare the embedding model, then sync both indexes.

    Failures are logged and leave the API running: search falls back to
    keywords and the index endpoints can retry.
    """
    if embedding_service.lifecycle.needs_download:
        try:
            await embedding_service.download_model()
        except Exception:
            logger.exception("Embedding model preparation failed at startup")
    try:
        report = await index_service.sync_indexes()
        logger.info("Startup sync complete: %s", report)
    except Exception:
        logger.exception("Startup index sync failed")


@contextlib.asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    overrides = app.dependency_overrides
    embedding_service = overrides.get(get_embedding_service, get_embedding_service)()
    index_service = overrides.get(get_index_service, get_index_service)()
    task = asyncio.create_task(warm_up(embedding_service, index_service))
    app.state.warm_up_task = task
    yield
    if not task.done():
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task


app = FastAPI(
    title="Journal Search API",
    description="Hybrid semantic and keyword search over voice journal recordings",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
    ],
    allow_origin_regex=r"http://localhost:\d+",
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(search_router)
app.include_router(index_router)


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "healthy"}
