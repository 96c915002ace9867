"""Construction of the long-lived search components used by the API."""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache

from journal_search.config import get_settings
from journal_search.ingestion.chunking import RecordingChunker, SemanticChunker
from journal_search.ingestion.embeddings import EmbeddingService, create_embedding_service
from journal_search.ingestion.pipeline import SearchIndexService
from journal_search.ingestion.storage import SupabaseRecordingStore
from journal_search.pipeline_config import ChunkingConfig, RetrievalConfig
from journal_search.retrieval.keyword_index import KeywordIndex
from journal_search.retrieval.search import HybridSearchService
from journal_search.retrieval.vector_store import SqliteVectorStore


@dataclass(frozen=True)
class SearchComponents:
    """Everything one process needs to index and search recordings."""

    embedding_service: EmbeddingService
    search_service: HybridSearchService
    index_service: SearchIndexService


@lru_cache(maxsize=1)
def get_components() -> SearchComponents:
    """Build the component graph once per process from settings."""
    settings = get_settings()
    embedding_service = create_embedding_service(settings)
    vector_store = SqliteVectorStore(settings.vector_db_path)
    keyword_index = KeywordIndex()
    recordings = SupabaseRecordingStore(table=settings.recordings_table)
    chunker = RecordingChunker(
        SemanticChunker(embedding_service, ChunkingConfig.from_settings(settings))
    )
    index_service = SearchIndexService(
        vector_store, keyword_index, chunker, recordings, embedding_service
    )
    return SearchComponents(
        embedding_service=embedding_service,
        search_service=HybridSearchService(
            vector_store,
            keyword_index,
            embedding_service,
            recordings,
            RetrievalConfig.from_settings(settings),
            keyword_index_ready=index_service.ensure_keyword_index,
        ),
        index_service=index_service,
    )


def get_embedding_service() -> EmbeddingService:
    return get_components().embedding_service


def get_search_service() -> HybridSearchService:
    return get_components().search_service


def get_index_service() -> SearchIndexService:
    return get_components().index_service
