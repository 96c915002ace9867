"""Index maintenance: recording -> chunks -> embeddings -> vector store, plus keyword rebuild."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from journal_search.ingestion.chunking import RecordingChunker
from journal_search.ingestion.embeddings import EmbeddingService, ensure_ready
from journal_search.ingestion.hashing import hash_recording
from journal_search.ingestion.models import Recording
from journal_search.ingestion.storage import RecordingSource
from journal_search.retrieval.keyword_index import KeywordIndex
from journal_search.retrieval.vector_store import VectorStore

logger = logging.getLogger(__name__)


class IndexingStatus(StrEnum):
    """State of the index maintenance process."""

    IDLE = "idle"
    SYNCING = "syncing"  # comparing content hashes
    INDEXING = "indexing"  # chunking + embedding + storing
    ERROR = "error"


@dataclass
class SyncReport:
    """Outcome of one :meth:`SearchIndexService.sync_indexes` pass."""

    indexed: int = 0
    removed: int = 0
    unchanged: int = 0
    failed: int = 0
    pending: int = 0  # changed recordings left for later because the model is not ready


class SearchIndexService:
    """Keeps the vector store and keyword index in step with the record store.

    Change detection compares each recording's content hash to the one in the
    vector store manifest, so unchanged recordings are never re-embedded. The
    keyword index is cheap and is rebuilt from scratch on every sync.
    Status and progress are pollable attributes.
    """

    def __init__(
        self,
        vector_store: VectorStore,
        keyword_index: KeywordIndex,
        chunker: RecordingChunker,
        recordings: RecordingSource,
        embedding_service: EmbeddingService,
    ) -> None:
        self._vector_store = vector_store
        self._keyword_index = keyword_index
        self._chunker = chunker
        self._recordings = recordings
        self._embedding_service = embedding_service

        self.status = IndexingStatus.IDLE
        self.error_message: str | None = None
        self.total_to_index = 0
        self.indexed_count = 0
        self._sync_task: asyncio.Task[SyncReport] | None = None
        self._keyword_build: asyncio.Task[None] | None = None

    @property
    def progress(self) -> float:
        """Fraction of the current operation completed, 0.0 - 1.0."""
        return self.indexed_count / self.total_to_index if self.total_to_index else 0.0

    @property
    def is_syncing(self) -> bool:
        return self._sync_task is not None and not self._sync_task.done()

    async def sync_indexes(self) -> SyncReport:
        """Index new and changed recordings, drop deleted ones, rebuild keywords.

        Concurrent callers share the sync already in progress.
        """
        task = self._sync_task
        if task is not None and not task.done():
            logger.info("Sync already in progress, waiting for it")
            return await asyncio.shield(task)

        task = asyncio.create_task(self._do_sync())
        self._sync_task = task
        try:
            return await task
        finally:
            if self._sync_task is task:
                self._sync_task = None

    async def _do_sync(self) -> SyncReport:
        report = SyncReport()
        try:
            self.status = IndexingStatus.SYNCING
            self.error_message = None

            recordings = await self._recordings.list_recordings()
            current_ids = {r.id for r in recordings}
            indexed_ids = await self._vector_store.get_indexed_recording_ids()

            to_index: list[Recording] = []
            for recording in recordings:
                stored_hash = await self._vector_store.get_content_hash(recording.id)
                if stored_hash != hash_recording(recording):
                    to_index.append(recording)
                else:
                    report.unchanged += 1
            to_remove = [rid for rid in indexed_ids if rid not in current_ids]

            logger.info(
                "Changes detected: %d to index, %d to remove, %d unchanged",
                len(to_index),
                len(to_remove),
                report.unchanged,
            )

            self.status = IndexingStatus.INDEXING
            self.total_to_index = len(to_index) + len(to_remove)
            self.indexed_count = 0

            for recording_id in to_remove:
                await self._vector_store.remove_chunks(recording_id)
                report.removed += 1
                self.indexed_count += 1

            if to_index and not self._embedding_service.lifecycle.is_ready:
                logger.warning(
                    "Embedding model not ready; %d recordings left unindexed", len(to_index)
                )
                report.pending = len(to_index)
                to_index = []

            for recording in to_index:
                try:
                    await self._index_recording(recording)
                    report.indexed += 1
                except Exception:
                    # One bad recording must not block the rest of the sync.
                    logger.exception("Error indexing recording %s", recording.id)
                    report.failed += 1
                self.indexed_count += 1

            await asyncio.to_thread(self._keyword_index.build_index, recordings)

            self.status = IndexingStatus.IDLE
            logger.info("Sync complete: %s", report)
            return report
        except Exception as exc:
            logger.exception("Error during index sync")
            self.status = IndexingStatus.ERROR
            self.error_message = str(exc)
            raise

    async def index_recording(self, recording: Recording) -> int:
        """Index one recording now (e.g. right after it is saved).

        Returns:
            Number of chunks stored.

        Raises:
            ModelNotReadyError: if the embedding model is not ready.
        """
        ensure_ready(self._embedding_service)
        chunk_count = await self._index_recording(recording)
        await self.refresh_keyword_index()
        return chunk_count

    async def _index_recording(self, recording: Recording) -> int:
        # Chunk first: an embedding failure leaves the previous chunks in place.
        chunks = await self._chunker.chunk_recording(recording)
        if chunks:
            # add_chunks swaps the recording's chunks in one transaction.
            await self._vector_store.add_chunks(chunks)
        else:
            logger.warning("No chunks generated for recording %s", recording.id)
            await self._vector_store.remove_chunks(recording.id)
        await self._vector_store.update_manifest(recording.id, hash_recording(recording), len(chunks))
        logger.info("Recording %s indexed: %d chunks", recording.id, len(chunks))
        return len(chunks)

    async def remove_recording(self, recording_id: str) -> bool:
        """Drop a deleted recording from both indexes."""
        removed = await self._vector_store.remove_chunks(recording_id)
        await self.refresh_keyword_index()
        return removed

    async def refresh_keyword_index(self) -> None:
        """Rebuild the keyword index from the current record store contents."""
        recordings = await self._recordings.list_recordings()
        await asyncio.to_thread(self._keyword_index.build_index, recordings)

    async def ensure_keyword_index(self) -> None:
        """Build the keyword index if it is not built yet.

        Used before keyword searches so a fresh process needs no explicit sync.
        Concurrent callers share one build.
        """
        if not self._keyword_index.needs_rebuild:
            return
        task = self._keyword_build
        if task is None or task.done():
            logger.info("Keyword index not built, building from the record store")
            task = asyncio.create_task(self.refresh_keyword_index())
            self._keyword_build = task
        await asyncio.shield(task)

    async def force_full_reindex(self) -> SyncReport:
        """Clear both indexes and rebuild everything. Re-embeds every recording.

        A sync already in progress finishes before the clear, and a fresh
        sync follows it.
        """
        logger.info("Force full reindex requested")
        running = self._sync_task
        if running is not None and not running.done():
            logger.info("Waiting for the running sync before clearing")
            try:
                await asyncio.shield(running)
            except Exception:
                logger.warning("Running sync failed; reindexing anyway")
        await self._vector_store.clear()
        self._keyword_index.clear()
        return await self.sync_indexes()

    async def get_stats(self) -> dict[str, Any]:
        return {
            "vector_store": await self._vector_store.get_stats(),
            "keyword_index": self._keyword_index.get_stats(),
            "status": str(self.status),
            "progress": self.progress,
            "error": self.error_message,
        }
