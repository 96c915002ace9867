"""Hybrid retrieval: vector + keyword search merged with reciprocal rank fusion."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field

from journal_search.errors import SearchError
from journal_search.ingestion.embeddings import EmbeddingService, ensure_ready
from journal_search.ingestion.storage import RecordingLookup
from journal_search.pipeline_config import RetrievalConfig
from journal_search.retrieval.keyword_index import KeywordIndex
from journal_search.retrieval.models import KeywordSearchResult, SearchResult, VectorSearchResult
from journal_search.retrieval.vector_store import VectorStore

logger = logging.getLogger(__name__)


@dataclass
class FusedEntry:
    """A recording's fused score before it is resolved to a full record."""

    recording_id: str
    rrf_score: float = 0.0
    matched_chunk: str | None = None
    matched_field: str | None = None
    matched_fields: frozenset[str] = field(default_factory=frozenset)
    vector_score: float | None = None
    keyword_score: float | None = None
    vector_rank: int | None = None
    keyword_rank: int | None = None

    @property
    def best_rank(self) -> int:
        return min(r for r in (self.vector_rank, self.keyword_rank) if r is not None)


def best_chunk_per_recording(hits: Sequence[VectorSearchResult]) -> list[VectorSearchResult]:
    """Keep each recording's highest-scoring chunk, ordered by that score."""
    best: dict[str, VectorSearchResult] = {}
    for hit in hits:
        current = best.get(hit.recording_id)
        if current is None or hit.score > current.score:
            best[hit.recording_id] = hit
    return sorted(best.values(), key=lambda h: -h.score)


def reciprocal_rank_fusion(
    vector_hits: Sequence[VectorSearchResult],
    keyword_hits: Sequence[KeywordSearchResult],
    k: float = 60.0,
) -> list[FusedEntry]:
    """Merge both ranked lists into one entry per recording, best first.

    Vector hits are collapsed to one per recording *before* ranking, so both
    sources rank recordings and a recording found by both is recognised as a
    both-match. Each source adds ``1 / (k + rank)`` with 0-based ranks.

    Ties on fused score go to the better single-source rank, then to the
    entry whose best rank came from the vector side, then to recording id.
    """
    entries: dict[str, FusedEntry] = {}

    for rank, hit in enumerate(best_chunk_per_recording(vector_hits)):
        entry = entries.setdefault(hit.recording_id, FusedEntry(hit.recording_id))
        entry.rrf_score += 1.0 / (k + rank)
        entry.vector_score = hit.score
        entry.vector_rank = rank
        entry.matched_chunk = hit.chunk_text
        entry.matched_field = hit.field

    rank = 0
    for hit in keyword_hits:
        entry = entries.setdefault(hit.recording.id, FusedEntry(hit.recording.id))
        if entry.keyword_rank is not None:
            continue
        entry.rrf_score += 1.0 / (k + rank)
        entry.keyword_score = hit.score
        entry.keyword_rank = rank
        entry.matched_fields = hit.matched_fields
        rank += 1

    return sorted(
        entries.values(),
        key=lambda e: (-e.rrf_score, e.best_rank, e.vector_rank != e.best_rank, e.recording_id),
    )


class HybridSearchService:
    """Unified search over journal recordings.

    Vector search finds meaning ("feeling overwhelmed" -> "stressed out");
    keyword search finds exact terms ("Project Alpha"). Both run concurrently
    and are fused with RRF, so scores never need normalising across sources.
    """

    def __init__(
        self,
        vector_store: VectorStore,
        keyword_index: KeywordIndex,
        embedding_service: EmbeddingService,
        recordings: RecordingLookup,
        config: RetrievalConfig | None = None,
        keyword_index_ready: Callable[[], Awaitable[None]] | None = None,
    ) -> None:
        self._vector_store = vector_store
        self._keyword_index = keyword_index
        self._embedding_service = embedding_service
        self._recordings = recordings
        self.config = config or RetrievalConfig()
        # Awaited before each keyword search; builds the index on first use.
        self._keyword_index_ready = keyword_index_ready

    async def search(self, query: str, limit: int | None = None) -> list[SearchResult]:
        """Search recordings for ``query``.

        Args:
            query: Free-text query.
            limit: Maximum number of results returned. Defaults to
                ``config.default_limit``.

        Returns:
            One :class:`SearchResult` per recording, highest fused score first.

        Raises:
            SearchError: if both the vector and keyword searches fail.
        """
        if limit is None:
            limit = self.config.default_limit
        if not query.strip() or limit <= 0:
            return []

        started = time.perf_counter()
        candidates = limit * self.config.candidate_multiplier
        vector_outcome, keyword_outcome = await asyncio.gather(
            self._vector_search(query, candidates),
            self._keyword_search(query, candidates),
            return_exceptions=True,
        )

        failures: list[BaseException] = []
        vector_hits: list[VectorSearchResult] = []
        keyword_hits: list[KeywordSearchResult] = []

        if isinstance(vector_outcome, BaseException):
            if not isinstance(vector_outcome, Exception):
                raise vector_outcome
            logger.warning("Vector search failed, using keyword results only: %s", vector_outcome)
            failures.append(vector_outcome)
        else:
            vector_hits = vector_outcome

        if isinstance(keyword_outcome, BaseException):
            if not isinstance(keyword_outcome, Exception):
                raise keyword_outcome
            logger.warning("Keyword search failed, using vector results only: %s", keyword_outcome)
            failures.append(keyword_outcome)
        else:
            keyword_hits = keyword_outcome

        if len(failures) == 2:
            raise SearchError("Both search methods failed", causes=failures)

        fused = reciprocal_rank_fusion(vector_hits, keyword_hits, k=self.config.rrf_k)
        results = await self._resolve(fused, limit)

        logger.info(
            "Search %r: %d vector + %d keyword hits -> %d results in %.1fms",
            query,
            len(vector_hits),
            len(keyword_hits),
            len(results),
            (time.perf_counter() - started) * 1000,
        )
        return results

    async def _vector_search(self, query: str, candidates: int) -> list[VectorSearchResult]:
        ensure_ready(self._embedding_service)
        embedding = await self._embedding_service.embed(query)
        return await self._vector_store.search(
            embedding, limit=candidates, min_score=self.config.vector_min_score
        )

    async def _keyword_search(self, query: str, candidates: int) -> list[KeywordSearchResult]:
        if self._keyword_index_ready is not None:
            await self._keyword_index_ready()
        return await asyncio.to_thread(self._keyword_index.search, query, candidates)

    async def _resolve(self, fused: list[FusedEntry], limit: int) -> list[SearchResult]:
        """Attach full recordings in rank order, skipping ones that no longer exist."""
        results: list[SearchResult] = []
        for entry in fused:
            if len(results) >= limit:
                break
            try:
                recording = await self._recordings.get_recording(entry.recording_id)
            except Exception:
                logger.exception("Lookup failed for recording %s, skipping", entry.recording_id)
                continue
            if recording is None:
                logger.warning("Recording %s not found, skipping", entry.recording_id)
                continue
            results.append(
                SearchResult(
                    recording=recording,
                    rrf_score=entry.rrf_score,
                    matched_chunk=entry.matched_chunk,
                    matched_field=entry.matched_field,
                    matched_fields=entry.matched_fields,
                    vector_score=entry.vector_score,
                    keyword_score=entry.keyword_score,
                    vector_rank=entry.vector_rank,
                    keyword_rank=entry.keyword_rank,
                )
            )
        return results
