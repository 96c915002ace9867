"""Semantic chunking of transcripts and recordings."""

from __future__ import annotations

import logging
import math

import numpy as np

from journal_search.ingestion.embeddings import EmbeddingService, cosine_similarity, normalize
from journal_search.ingestion.models import Chunk, IndexedChunk, Recording
from journal_search.ingestion.sentences import SentenceSplitter
from journal_search.pipeline_config import ChunkingConfig

logger = logging.getLogger(__name__)

# Recording fields embedded for vector search, in indexing order.
INDEXED_FIELDS: tuple[str, ...] = ("title", "summary", "context", "transcript")


def _estimate_tokens(char_length: int) -> int:
    """Rough token estimate: 1 token per 4 characters."""
    return math.ceil(char_length / 4)


class SemanticChunker:
    """Group sentences into chunks bounded by topical coherence and size.

    Sentences are accumulated greedily. The next sentence joins the current
    chunk only if its cosine similarity to the chunk's running-mean embedding
    is at least ``similarity_threshold`` *and* the joined text stays within
    ``max_chunk_tokens``. A single sentence longer than the cap is still
    emitted as its own chunk; the cap bounds merging, not sentence length.
    """

    def __init__(
        self,
        embedding_service: EmbeddingService,
        config: ChunkingConfig | None = None,
        splitter: SentenceSplitter | None = None,
    ) -> None:
        config = config or ChunkingConfig()
        self._embedding_service = embedding_service
        self._splitter = splitter or SentenceSplitter()
        self.similarity_threshold = config.similarity_threshold
        self.max_chunk_tokens = config.max_chunk_tokens

    async def chunk_transcript(self, text: str) -> list[Chunk]:
        """Chunk ``text`` into semantic units with unit-length embeddings.

        Args:
            text: Raw transcript text, punctuated or not.

        Returns:
            Ordered chunks whose sentence ranges tile ``[0, n_sentences)``.
        """
        sentences = self._splitter.split(text)
        if not sentences:
            return []

        if len(sentences) == 1:
            embedding = normalize(await self._embedding_service.embed(sentences[0]))
            return [Chunk(text=sentences[0], embedding=embedding, sentence_range=(0, 1))]

        raw = await self._embedding_service.embed_batch(sentences)
        if len(raw) != len(sentences):
            raise ValueError(
                f"Embedding service returned {len(raw)} vectors for {len(sentences)} sentences"
            )
        embeddings = [np.asarray(normalize(vec), dtype=np.float64) for vec in raw]

        chunks = self._group(sentences, embeddings)
        logger.debug("Chunked %d sentences into %d chunks", len(sentences), len(chunks))
        return chunks

    def _group(self, sentences: list[str], embeddings: list[np.ndarray]) -> list[Chunk]:
        chunks: list[Chunk] = []
        start = 0
        text_length = len(sentences[0])
        running_sum = embeddings[0].copy()

        for i in range(1, len(sentences)):
            joined_length = text_length + 1 + len(sentences[i])
            fits = _estimate_tokens(joined_length) <= self.max_chunk_tokens
            similar = cosine_similarity(running_sum, embeddings[i]) >= self.similarity_threshold

            if fits and similar:
                text_length = joined_length
                running_sum += embeddings[i]
                continue

            chunks.append(self._make_chunk(sentences, running_sum, start, i))
            start = i
            text_length = len(sentences[i])
            running_sum = embeddings[i].copy()

        chunks.append(self._make_chunk(sentences, running_sum, start, len(sentences)))
        return chunks

    @staticmethod
    def _make_chunk(
        sentences: list[str], embedding_sum: np.ndarray, start: int, end: int
    ) -> Chunk:
        # The normalised sum equals the normalised mean.
        return Chunk(
            text=" ".join(sentences[start:end]),
            embedding=normalize(embedding_sum),
            sentence_range=(start, end),
        )


class RecordingChunker:
    """Turn a recording's text fields into :class:`IndexedChunk` objects."""

    def __init__(self, chunker: SemanticChunker, fields: tuple[str, ...] = INDEXED_FIELDS) -> None:
        self._chunker = chunker
        self.fields = fields

    async def chunk_recording(self, recording: Recording) -> list[IndexedChunk]:
        indexed: list[IndexedChunk] = []
        for field_name in self.fields:
            text = getattr(recording, field_name, "") or ""
            if not text.strip():
                continue
            chunks = await self._chunker.chunk_transcript(text)
            indexed.extend(
                IndexedChunk(
                    recording_id=recording.id,
                    field=field_name,
                    chunk_index=idx,
                    chunk_text=chunk.text,
                    embedding=chunk.embedding,
                )
                for idx, chunk in enumerate(chunks)
            )
        return indexed
