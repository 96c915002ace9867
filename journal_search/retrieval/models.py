"""Result types produced by the vector, keyword and hybrid searches."""

from __future__ import annotations

from dataclasses import dataclass, field

from journal_search.ingestion.models import Recording

HIGH_RELEVANCE_THRESHOLD = 0.035
MEDIUM_RELEVANCE_THRESHOLD = 0.02
ELLIPSIS = "..."


@dataclass(frozen=True)
class VectorSearchResult:
    """One chunk hit from the vector store; higher ``score`` is more similar."""

    chunk_id: int
    recording_id: str
    field: str
    chunk_index: int
    chunk_text: str
    score: float


@dataclass(frozen=True)
class KeywordSearchResult:
    """One recording hit from the keyword index."""

    recording: Recording
    score: float
    matched_fields: frozenset[str] = frozenset()


@dataclass
class SearchResult:
    """A fused hybrid-search hit, one per recording."""

    recording: Recording
    rrf_score: float
    matched_chunk: str | None = None
    matched_field: str | None = None
    matched_fields: frozenset[str] = field(default_factory=frozenset)
    vector_score: float | None = None
    keyword_score: float | None = None
    vector_rank: int | None = None
    keyword_rank: int | None = None

    def __post_init__(self) -> None:
        if self.vector_score is None and self.keyword_score is None:
            raise ValueError("SearchResult needs a vector score or a keyword score")

    @property
    def has_vector_match(self) -> bool:
        return self.vector_score is not None

    @property
    def has_keyword_match(self) -> bool:
        return self.keyword_score is not None

    @property
    def is_both_match(self) -> bool:
        return self.has_vector_match and self.has_keyword_match

    @property
    def relevance_label(self) -> str:
        return relevance_label(self.rrf_score)

    def snippet(self, max_length: int = 200) -> str:
        """Text to display for this hit: the matched chunk, else a transcript prefix."""
        if self.matched_chunk:
            return self.matched_chunk
        return truncate(self.recording.transcript, max_length)


def relevance_label(rrf_score: float) -> str:
    """Bucket a fused score into a display label."""
    if rrf_score >= HIGH_RELEVANCE_THRESHOLD:
        return "High relevance"
    if rrf_score >= MEDIUM_RELEVANCE_THRESHOLD:
        return "Medium relevance"
    return "Low relevance"


def truncate(text: str, max_length: int) -> str:
    """Cut ``text`` to ``max_length`` characters and append an ellipsis if it was longer."""
    if len(text) <= max_length:
        return text
    return text[:max_length] + ELLIPSIS
