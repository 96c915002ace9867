"""Tests for index sync: change detection, removal, failures and status."""

from __future__ import annotations

import asyncio
from dataclasses import replace
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from fakes import FakeEmbeddingService, InMemoryRecordings

from journal_search.errors import ModelNotReadyError
from journal_search.ingestion.chunking import RecordingChunker, SemanticChunker
from journal_search.ingestion.hashing import compute_content_hash, hash_recording
from journal_search.ingestion.models import IndexedChunk, Recording
from journal_search.ingestion.pipeline import IndexingStatus, SearchIndexService
from journal_search.retrieval.keyword_index import KeywordIndex
from journal_search.retrieval.search import HybridSearchService
from journal_search.retrieval.vector_store import SqliteVectorStore


class FailingEmbeddingService(FakeEmbeddingService):
    """Fails on any text mentioning "corrupt"."""

    async def embed(self, text: str) -> list[float]:
        if "corrupt" in text:
            raise RuntimeError("embedding backend rejected input")
        return await super().embed(text)

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        if any("corrupt" in t for t in texts):
            raise RuntimeError("embedding backend rejected input")
        return await super().embed_batch(texts)


class ObservingVectorStore(SqliteVectorStore):
    """Runs a search whenever a batch of chunks starts to be written."""

    def __init__(self) -> None:
        super().__init__()
        self.query: list[float] | None = None
        self.seen_during_write: list[set[str]] = []

    async def add_chunks(self, chunks: list[IndexedChunk]) -> None:
        if self.query is not None:
            hits = await self.search(self.query, limit=100)
            self.seen_during_write.append({h.recording_id for h in hits})
        await super().add_chunks(chunks)


class PausingVectorStore(SqliteVectorStore):
    """Once armed, holds the next content-hash read until ``resume`` is set."""

    def __init__(self) -> None:
        super().__init__()
        self.armed = False
        self.paused = asyncio.Event()
        self.resume = asyncio.Event()

    async def get_content_hash(self, recording_id: str) -> str | None:
        stored = await super().get_content_hash(recording_id)
        if self.armed:
            self.armed = False
            self.paused.set()
            await self.resume.wait()
        return stored


class Harness:
    def __init__(
        self,
        recordings: list[Recording],
        embeddings: FakeEmbeddingService,
        vector_store: SqliteVectorStore | None = None,
    ) -> None:
        self.embeddings = embeddings
        self.store = InMemoryRecordings(recordings)
        self.vector_store = vector_store or SqliteVectorStore()
        self.keyword_index = KeywordIndex()
        self.service = SearchIndexService(
            self.vector_store,
            self.keyword_index,
            RecordingChunker(SemanticChunker(embeddings)),
            self.store,
            embeddings,
        )


@pytest_asyncio.fixture
async def harness(sample_recordings: list[Recording], embedding_service: FakeEmbeddingService):
    h = Harness(sample_recordings, embedding_service)
    yield h
    await h.vector_store.close()


class TestContentHash:
    def test_sha256_hex(self) -> None:
        assert compute_content_hash("abc") == (
            "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"
        )

    def test_changes_with_indexed_fields(self) -> None:
        base = Recording(id="r", title="Walk", transcript="Cold.", tags=("a",))
        assert hash_recording(base) == hash_recording(replace(base))
        assert hash_recording(base) != hash_recording(replace(base, transcript="Warm."))
        assert hash_recording(base) != hash_recording(replace(base, tags=("b",)))
        assert hash_recording(base) != hash_recording(replace(base, summary="New summary."))

    def test_ignores_tag_order_and_identity(self) -> None:
        a = Recording(id="one", title="Walk", tags=("x", "y"))
        b = Recording(id="two", title="Walk", tags=("y", "x"))
        assert hash_recording(a) == hash_recording(b)


class TestSyncIndexes:
    @pytest.mark.asyncio
    async def test_indexes_new_recordings(self, harness: Harness) -> None:
        report = await harness.service.sync_indexes()

        assert report.indexed == 3
        assert report.unchanged == 0
        assert report.failed == 0
        assert sorted(await harness.vector_store.get_indexed_recording_ids()) == [
            "rec-1",
            "rec-2",
            "rec-3",
        ]
        assert harness.keyword_index.index_size == 3
        assert harness.service.status is IndexingStatus.IDLE
        assert harness.service.progress == 1.0

    @pytest.mark.asyncio
    async def test_skips_unchanged_recordings(self, harness: Harness) -> None:
        await harness.service.sync_indexes()
        embedded = len(harness.embeddings.embedded_texts)

        report = await harness.service.sync_indexes()

        assert report.indexed == 0
        assert report.unchanged == 3
        assert len(harness.embeddings.embedded_texts) == embedded

    @pytest.mark.asyncio
    async def test_reindexes_changed_recording(self, harness: Harness) -> None:
        await harness.service.sync_indexes()
        original = harness.store.recordings["rec-2"]
        harness.store.put(replace(original, transcript="I sat by the lighthouse instead."))

        report = await harness.service.sync_indexes()

        assert report.indexed == 1
        assert report.unchanged == 2
        results = await harness.vector_store.search(
            harness.embeddings.vector_for("I sat by the lighthouse instead."), limit=1
        )
        assert results[0].recording_id == "rec-2"
        assert [r.recording.id for r in harness.keyword_index.search("lighthouse")] == ["rec-2"]

    @pytest.mark.asyncio
    async def test_removes_deleted_recordings(self, harness: Harness) -> None:
        await harness.service.sync_indexes()
        harness.store.delete("rec-1")

        report = await harness.service.sync_indexes()

        assert report.removed == 1
        assert "rec-1" not in await harness.vector_store.get_indexed_recording_ids()
        assert harness.keyword_index.search("alpha") == []

    @pytest.mark.asyncio
    async def test_empty_recording_not_reindexed(self, harness: Harness) -> None:
        harness.store.put(Recording(id="blank"))
        await harness.service.sync_indexes()

        report = await harness.service.sync_indexes()

        assert report.unchanged == 4
        assert not await harness.vector_store.is_indexed("blank")

    @pytest.mark.asyncio
    async def test_model_not_ready_leaves_changes_pending(
        self, sample_recordings: list[Recording]
    ) -> None:
        h = Harness(sample_recordings, FakeEmbeddingService(ready=False))
        report = await h.service.sync_indexes()

        assert report.pending == 3
        assert report.indexed == 0
        assert await h.vector_store.get_indexed_recording_ids() == []
        assert h.keyword_index.index_size == 3
        await h.vector_store.close()

    @pytest.mark.asyncio
    async def test_one_failure_does_not_stop_sync(self, sample_recordings: list[Recording]) -> None:
        broken = Recording(id="broken", title="Bad", transcript="This file is corrupt. Skip it.")
        h = Harness([*sample_recordings, broken], FailingEmbeddingService())

        report = await h.service.sync_indexes()

        assert report.indexed == 3
        assert report.failed == 1
        assert h.service.status is IndexingStatus.IDLE
        assert await h.vector_store.get_content_hash("broken") is None
        await h.vector_store.close()

    @pytest.mark.asyncio
    async def test_source_failure_sets_error_status(self, harness: Harness) -> None:
        async def unavailable() -> list[Recording]:
            raise ConnectionError("record store unavailable")

        harness.store.list_recordings = unavailable  # type: ignore[method-assign]

        with pytest.raises(ConnectionError):
            await harness.service.sync_indexes()
        assert harness.service.status is IndexingStatus.ERROR
        assert harness.service.error_message == "record store unavailable"
        assert not harness.service.is_syncing

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_sync(self, harness: Harness) -> None:
        first, second = await asyncio.gather(
            harness.service.sync_indexes(), harness.service.sync_indexes()
        )
        assert first is second
        assert first.indexed == 3


class TestSingleRecordOperations:
    @pytest.mark.asyncio
    async def test_index_recording(self, harness: Harness) -> None:
        recording = Recording(id="new", title="Garden notes", transcript="Planted tomatoes today.")
        harness.store.put(recording)

        chunk_count = await harness.service.index_recording(recording)

        assert chunk_count == 2
        assert await harness.vector_store.is_indexed("new")
        assert await harness.vector_store.get_content_hash("new") == hash_recording(recording)
        assert [r.recording.id for r in harness.keyword_index.search("tomatoes")] == ["new"]

    @pytest.mark.asyncio
    async def test_index_recording_requires_ready_model(
        self, sample_recordings: list[Recording]
    ) -> None:
        h = Harness(sample_recordings, FakeEmbeddingService(ready=False))
        with pytest.raises(ModelNotReadyError):
            await h.service.index_recording(sample_recordings[0])
        await h.vector_store.close()

    @pytest.mark.asyncio
    async def test_index_recording_propagates_embedding_errors(
        self, sample_recordings: list[Recording]
    ) -> None:
        h = Harness(sample_recordings, FailingEmbeddingService())
        await h.service.sync_indexes()
        corrupted = replace(sample_recordings[0], transcript="Now this is corrupt. Oops.")

        with pytest.raises(RuntimeError):
            await h.service.index_recording(corrupted)
        # The previous chunks survive a failed re-index.
        assert await h.vector_store.is_indexed(sample_recordings[0].id)
        await h.vector_store.close()

    @pytest.mark.asyncio
    async def test_remove_recording(self, harness: Harness) -> None:
        await harness.service.sync_indexes()
        harness.store.delete("rec-3")

        assert await harness.service.remove_recording("rec-3") is True
        assert not await harness.vector_store.is_indexed("rec-3")
        assert harness.keyword_index.search("overwhelmed") == []

    @pytest.mark.asyncio
    async def test_force_full_reindex(self, harness: Harness) -> None:
        await harness.service.sync_indexes()
        report = await harness.service.force_full_reindex()
        assert report.indexed == 3
        assert report.unchanged == 0

    @pytest.mark.asyncio
    async def test_force_full_reindex_waits_for_running_sync(
        self, sample_recordings: list[Recording]
    ) -> None:
        store = PausingVectorStore()
        h = Harness(sample_recordings, FakeEmbeddingService(), store)
        await h.service.sync_indexes()

        store.armed = True
        running = asyncio.create_task(h.service.sync_indexes())
        await store.paused.wait()
        reindex = asyncio.create_task(h.service.force_full_reindex())
        await asyncio.sleep(0)
        store.resume.set()

        report = await reindex
        assert (await running).unchanged == 3
        assert report.indexed == 3
        assert (await store.get_stats())["total_recordings"] == 3
        assert h.keyword_index.index_size == 3
        await store.close()

    @pytest.mark.asyncio
    async def test_reindex_keeps_recording_searchable(
        self, sample_recordings: list[Recording]
    ) -> None:
        store = ObservingVectorStore()
        h = Harness(sample_recordings, FakeEmbeddingService(), store)
        await h.service.sync_indexes()
        original = h.store.recordings["rec-1"]
        store.query = h.embeddings.vector_for(original.transcript)

        await h.service.index_recording(
            replace(original, transcript="We moved the Project Alpha milestone to May.")
        )

        assert store.seen_during_write
        assert all("rec-1" in seen for seen in store.seen_during_write)
        await store.close()

    @pytest.mark.asyncio
    async def test_reindex_to_empty_recording(self, harness: Harness) -> None:
        await harness.service.sync_indexes()
        emptied = Recording(id="rec-2")
        harness.store.put(emptied)

        assert await harness.service.index_recording(emptied) == 0
        assert not await harness.vector_store.is_indexed("rec-2")
        assert await harness.vector_store.get_content_hash("rec-2") == hash_recording(emptied)

    @pytest.mark.asyncio
    async def test_stats(self, harness: Harness) -> None:
        await harness.service.sync_indexes()
        stats = await harness.service.get_stats()
        assert stats["vector_store"]["total_recordings"] == 3
        assert stats["keyword_index"]["index_size"] == 3
        assert stats["status"] == "idle"
        assert stats["error"] is None


class TestEndToEnd:
    @pytest.mark.asyncio
    async def test_sync_then_hybrid_search(self, harness: Harness) -> None:
        await harness.service.sync_indexes()
        search = HybridSearchService(
            harness.vector_store, harness.keyword_index, harness.embeddings, harness.store
        )

        results = await search.search("Project Alpha", limit=5)

        assert results[0].recording.id == "rec-1"
        assert results[0].is_both_match
        assert len({r.recording.id for r in results}) == len(results)


class TestKeywordIndexOnDemand:
    @pytest.mark.asyncio
    async def test_builds_when_missing(self, harness: Harness) -> None:
        assert harness.keyword_index.needs_rebuild
        await harness.service.ensure_keyword_index()
        assert harness.keyword_index.index_size == 3

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_build(self, harness: Harness) -> None:
        listing = AsyncMock(side_effect=harness.store.list_recordings)
        harness.store.list_recordings = listing  # type: ignore[method-assign]

        await asyncio.gather(*(harness.service.ensure_keyword_index() for _ in range(3)))
        await harness.service.ensure_keyword_index()

        assert listing.await_count == 1
        assert harness.keyword_index.index_size == 3

    @pytest.mark.asyncio
    async def test_first_search_builds_keyword_index(
        self, sample_recordings: list[Recording]
    ) -> None:
        h = Harness(sample_recordings, FakeEmbeddingService(ready=False))
        search = HybridSearchService(
            h.vector_store,
            h.keyword_index,
            h.embeddings,
            h.store,
            keyword_index_ready=h.service.ensure_keyword_index,
        )

        results = await search.search("Project Alpha", limit=5)

        assert results[0].recording.id == "rec-1"
        assert results[0].vector_rank is None
        assert not h.keyword_index.needs_rebuild
        await h.vector_store.close()
