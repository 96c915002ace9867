"""Chunk embedding storage with cosine-similarity search."""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol

import numpy as np

from journal_search.ingestion.embeddings import normalize
from journal_search.ingestion.models import IndexedChunk
from journal_search.retrieval.models import VectorSearchResult

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS chunks (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    recording_id TEXT NOT NULL,
    field TEXT NOT NULL,
    chunk_index INTEGER NOT NULL,
    chunk_text TEXT NOT NULL,
    embedding BLOB NOT NULL,
    created_at TEXT NOT NULL,
    UNIQUE(recording_id, field, chunk_index)
);
CREATE INDEX IF NOT EXISTS idx_chunks_recording ON chunks(recording_id);
CREATE TABLE IF NOT EXISTS index_manifest (
    recording_id TEXT PRIMARY KEY,
    content_hash TEXT NOT NULL,
    indexed_at TEXT NOT NULL,
    chunk_count INTEGER NOT NULL
);
"""

# Little-endian float32, 4 bytes per dimension
_BLOB_DTYPE = np.dtype("<f4")


class VectorStore(Protocol):
    """Storage and nearest-neighbour search for chunk embeddings.

    The manifest records a content hash per recording so callers can skip
    re-embedding recordings whose text has not changed.
    """

    async def initialize(self) -> None: ...

    async def add_chunks(self, chunks: list[IndexedChunk]) -> None: ...

    async def remove_chunks(self, recording_id: str) -> bool: ...

    async def is_indexed(self, recording_id: str) -> bool: ...

    async def get_content_hash(self, recording_id: str) -> str | None: ...

    async def update_manifest(self, recording_id: str, content_hash: str, chunk_count: int) -> None: ...

    async def search(
        self, query_embedding: list[float], limit: int = 20, min_score: float = 0.0
    ) -> list[VectorSearchResult]: ...

    async def get_indexed_recording_ids(self) -> list[str]: ...

    async def get_stats(self) -> dict[str, Any]: ...

    async def clear(self) -> None: ...

    async def close(self) -> None: ...


def _to_blob(vector: list[float]) -> bytes:
    return np.asarray(normalize(vector), dtype=_BLOB_DTYPE).tobytes()


def _from_blob(blob: bytes) -> np.ndarray:
    return np.frombuffer(blob, dtype=_BLOB_DTYPE)



class SqliteVectorStore:
    """SQLite-backed vector store using a linear cosine-similarity scan.

    Embeddings are normalised before storage, so similarity is a dot product.
    All operations hold one asyncio lock: a search never observes a
    half-written ``add_chunks`` batch. The SQLite and numpy work itself runs
    in a worker thread so the event loop stays free.
    """

    def __init__(self, db_path: str | Path = ":memory:") -> None:
        self.db_path = str(db_path)
        self._conn: sqlite3.Connection | None = None
        self._lock = asyncio.Lock()

    async def initialize(self) -> None:
        async with self._lock:
            await asyncio.to_thread(self._ensure_open)

    def _ensure_open(self) -> sqlite3.Connection:
        if self._conn is not None:
            return self._conn
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        # Access is serialised by self._lock; worker threads take turns.
        conn = sqlite3.connect(self.db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.executescript(_SCHEMA)
        self._conn = conn
        logger.info("Vector store opened at %s", self.db_path)
        return conn

    async def add_chunks(self, chunks: list[IndexedChunk]) -> None:
        """Store ``chunks``, replacing any existing chunks of the same recordings."""
        if not chunks:
            return
        async with self._lock:
            await asyncio.to_thread(self._add_chunks_sync, chunks)

    def _add_chunks_sync(self, chunks: list[IndexedChunk]) -> None:
        rows = [
            (
                c.recording_id,
                c.field,
                c.chunk_index,
                c.chunk_text,
                _to_blob(c.embedding),
                c.created_at.isoformat(),
            )
            for c in chunks
        ]
        recording_ids = sorted({c.recording_id for c in chunks})
        conn = self._ensure_open()
        with conn:
            conn.executemany(
                "DELETE FROM chunks WHERE recording_id = ?",
                [(rid,) for rid in recording_ids],
            )
            conn.executemany(
                "INSERT INTO chunks (recording_id, field, chunk_index, chunk_text, embedding, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                rows,
            )
        logger.info("Stored %d chunks for %d recordings", len(rows), len(recording_ids))

    async def remove_chunks(self, recording_id: str) -> bool:
        """Delete a recording's chunks and manifest entry; False if none existed."""
        async with self._lock:
            return await asyncio.to_thread(self._remove_chunks_sync, recording_id)

    def _remove_chunks_sync(self, recording_id: str) -> bool:
        conn = self._ensure_open()
        with conn:
            deleted = conn.execute(
                "DELETE FROM chunks WHERE recording_id = ?", (recording_id,)
            ).rowcount
            conn.execute("DELETE FROM index_manifest WHERE recording_id = ?", (recording_id,))
        if deleted:
            logger.info("Removed %d chunks for recording %s", deleted, recording_id)
        return deleted > 0

    async def is_indexed(self, recording_id: str) -> bool:
        row = await self._fetchone("SELECT 1 FROM chunks WHERE recording_id = ? LIMIT 1", (recording_id,))
        return row is not None

    async def get_content_hash(self, recording_id: str) -> str | None:
        row = await self._fetchone(
            "SELECT content_hash FROM index_manifest WHERE recording_id = ?", (recording_id,)
        )
        return row["content_hash"] if row else None

    async def _fetchone(self, sql: str, params: tuple[Any, ...]) -> sqlite3.Row | None:
        async with self._lock:
            return await asyncio.to_thread(self._fetchone_sync, sql, params)

    def _fetchone_sync(self, sql: str, params: tuple[Any, ...]) -> sqlite3.Row | None:
        return self._ensure_open().execute(sql, params).fetchone()

    async def update_manifest(self, recording_id: str, content_hash: str, chunk_count: int) -> None:
        async with self._lock:
            await asyncio.to_thread(
                self._update_manifest_sync, recording_id, content_hash, chunk_count
            )
        logger.debug("Manifest updated for %s: %d chunks", recording_id, chunk_count)

    def _update_manifest_sync(self, recording_id: str, content_hash: str, chunk_count: int) -> None:
        conn = self._ensure_open()
        with conn:
            conn.execute(
                "INSERT OR REPLACE INTO index_manifest (recording_id, content_hash, indexed_at, chunk_count) "
                "VALUES (?, ?, ?, ?)",
                (recording_id, content_hash, datetime.now(timezone.utc).isoformat(), chunk_count),
            )

    async def search(
        self, query_embedding: list[float], limit: int = 20, min_score: float = 0.0
    ) -> list[VectorSearchResult]:
        """Top-``limit`` chunks by cosine similarity, each scoring at least ``min_score``.

        Raises:
            ValueError: if the query is a zero vector or its dimensions differ
                from the stored embeddings.
        """
        if limit <= 0:
            return []
        async with self._lock:
            return await asyncio.to_thread(self._search_sync, query_embedding, limit, min_score)

    def _search_sync(
        self, query_embedding: list[float], limit: int, min_score: float
    ) -> list[VectorSearchResult]:
        query = np.asarray(normalize(query_embedding), dtype=np.float64)
        rows = self._ensure_open().execute(
            "SELECT id, recording_id, field, chunk_index, chunk_text, embedding FROM chunks ORDER BY id"
        ).fetchall()
        if not rows:
            return []

        matrix = np.vstack([_from_blob(row["embedding"]) for row in rows]).astype(np.float64)
        if matrix.shape[1] != query.shape[0]:
            raise ValueError(
                f"Query has {query.shape[0]} dimensions, index has {matrix.shape[1]}"
            )
        # Clamp float error; normalised vectors give [-1, 1] and negatives are unrelated.
        scores = np.clip(matrix @ query, 0.0, 1.0)

        results: list[VectorSearchResult] = []
        for idx in np.argsort(-scores, kind="stable"):
            score = float(scores[idx])
            if score < min_score:
                break
            row = rows[idx]
            results.append(
                VectorSearchResult(
                    chunk_id=int(row["id"]),
                    recording_id=row["recording_id"],
                    field=row["field"],
                    chunk_index=int(row["chunk_index"]),
                    chunk_text=row["chunk_text"],
                    score=score,
                )
            )
            if len(results) >= limit:
                break
        logger.debug("Vector search over %d chunks returned %d results", len(rows), len(results))
        return results

    async def get_indexed_recording_ids(self) -> list[str]:
        """Recordings with chunks or a manifest entry (empty recordings have only the latter)."""
        async with self._lock:
            rows = await asyncio.to_thread(self._indexed_ids_sync)
        return [row["recording_id"] for row in rows]

    def _indexed_ids_sync(self) -> list[sqlite3.Row]:
        return self._ensure_open().execute(
            "SELECT recording_id FROM chunks UNION SELECT recording_id FROM index_manifest "
            "ORDER BY recording_id"
        ).fetchall()

    async def get_stats(self) -> dict[str, Any]:
        async with self._lock:
            return await asyncio.to_thread(self._stats_sync)

    def _stats_sync(self) -> dict[str, Any]:
        conn = self._ensure_open()
        total_chunks = conn.execute("SELECT COUNT(*) FROM chunks").fetchone()[0]
        total_recordings = conn.execute(
            "SELECT COUNT(DISTINCT recording_id) FROM chunks"
        ).fetchone()[0]
        page_count = conn.execute("PRAGMA page_count").fetchone()[0]
        page_size = conn.execute("PRAGMA page_size").fetchone()[0]
        return {
            "total_chunks": int(total_chunks),
            "total_recordings": int(total_recordings),
            "total_size": int(page_count * page_size),
        }

    async def clear(self) -> None:
        async with self._lock:
            await asyncio.to_thread(self._clear_sync)
        logger.info("Vector store cleared")

    def _clear_sync(self) -> None:
        conn = self._ensure_open()
        with conn:
            conn.execute("DELETE FROM chunks")
            conn.execute("DELETE FROM index_manifest")

    async def close(self) -> None:
        async with self._lock:
            if self._conn is not None:
                await asyncio.to_thread(self._conn.close)
                self._conn = None
                logger.info("Vector store closed")
