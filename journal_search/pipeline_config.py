"""Pipeline configuration: backend enum and per-component tuning dataclasses."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from journal_search.config import Settings


class EmbeddingBackend(StrEnum):
    """Available embedding backends, selected once at construction."""

    OPENAI = "openai"


@dataclass(frozen=True)
class ChunkingConfig:
    """Immutable tuning for the semantic chunker.

    ``similarity_threshold`` is the cosine similarity below which a topic
    break is declared; ``max_chunk_tokens`` caps how far sentences are merged.
    """

    similarity_threshold: float = 0.5
    max_chunk_tokens: int = 500

    @classmethod
    def from_settings(cls, settings: Settings) -> ChunkingConfig:
        return cls(
            similarity_threshold=settings.similarity_threshold,
            max_chunk_tokens=settings.max_chunk_tokens,
        )


@dataclass(frozen=True)
class RetrievalConfig:
    """Immutable tuning for hybrid retrieval.

    Each source is asked for ``limit * candidate_multiplier`` candidates so the
    fused list still has ``limit`` entries after deduplication.
    """

    rrf_k: float = 60.0
    candidate_multiplier: int = 2
    vector_min_score: float = 0.0
    default_limit: int = 20

    @classmethod
    def from_settings(cls, settings: Settings) -> RetrievalConfig:
        return cls(
            rrf_k=settings.rrf_k,
            candidate_multiplier=settings.candidate_multiplier,
            vector_min_score=settings.vector_min_score,
            default_limit=settings.search_limit,
        )
