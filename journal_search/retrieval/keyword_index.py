"""Field-weighted BM25 keyword index over recordings."""

from __future__ import annotations

import logging
import re
import threading
import time
from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Any

import numpy as np
from rank_bm25 import BM25Plus

from journal_search.errors import IndexNotReadyError
from journal_search.ingestion.models import Recording
from journal_search.retrieval.models import KeywordSearchResult

logger = logging.getLogger(__name__)

# A title hit must outrank the same hit density in the transcript.
DEFAULT_FIELD_WEIGHTS: dict[str, float] = {
    "title": 3.0,
    "tags": 2.0,
    "summary": 1.5,
    "context": 1.2,
    "transcript": 1.0,
}

_TOKEN_RE = re.compile(r"\w+")


def tokenize(text: str) -> list[str]:
    """Case-folded word tokens; used for both documents and queries."""
    return _TOKEN_RE.findall(text.casefold())


def _field_tokens(recording: Recording, field_name: str) -> list[str]:
    if field_name == "tags":
        return [token for tag in recording.tags for token in tokenize(tag)]
    return tokenize(getattr(recording, field_name, "") or "")


class KeywordIndex:
    """In-memory BM25 index with one scorer per structured field.

    States: empty (``needs_rebuild``; ``search`` raises) -> built -> empty on
    ``clear``. ``build_index`` replaces the whole index and may be called any
    number of times. The new index is built off to the side and swapped in
    under a lock, so a concurrent ``search`` sees either the old or the new
    index, never a partial one.
    """

    def __init__(
        self,
        field_weights: dict[str, float] | None = None,
        k1: float = 1.5,
        b: float = 0.75,
        delta: float = 1.0,
    ) -> None:
        self.field_weights = dict(field_weights or DEFAULT_FIELD_WEIGHTS)
        self.k1 = k1
        self.b = b
        self.delta = delta
        self._lock = threading.RLock()
        self._recordings: list[Recording] | None = None
        self._scorers: dict[str, BM25Plus] = {}
        self._last_built: datetime | None = None

    @property
    def needs_rebuild(self) -> bool:
        with self._lock:
            return self._recordings is None

    @property
    def index_size(self) -> int:
        with self._lock:
            return len(self._recordings) if self._recordings is not None else 0

    def build_index(self, recordings: Iterable[Recording]) -> None:
        """Replace the index with one built from ``recordings``."""
        started = time.perf_counter()
        docs = list(recordings)

        scorers: dict[str, BM25Plus] = {}
        for field_name in self.field_weights:
            corpus = [_field_tokens(r, field_name) for r in docs]
            # rank_bm25 cannot score a field with no tokens anywhere.
            if not any(corpus):
                continue
            scorers[field_name] = BM25Plus(corpus, k1=self.k1, b=self.b, delta=self.delta)

        with self._lock:
            self._recordings = docs
            self._scorers = scorers
            self._last_built = datetime.now(timezone.utc)

        logger.info(
            "Keyword index built: %d recordings, %d fields in %.1fms",
            len(docs),
            len(scorers),
            (time.perf_counter() - started) * 1000,
        )

    def search(self, query: str, limit: int = 20) -> list[KeywordSearchResult]:
        """Rank recordings for ``query``, best first.

        Raises:
            IndexNotReadyError: if ``build_index`` has not been called.
        """
        terms = list(dict.fromkeys(tokenize(query)))
        if not terms:
            return []

        with self._lock:
            recordings = self._recordings
            scorers = self._scorers
        if recordings is None:
            raise IndexNotReadyError("Keyword index not built. Call build_index() first.")
        if not recordings or limit <= 0:
            return []

        n_docs = len(recordings)
        totals = np.zeros(n_docs)
        matched: list[set[str]] = [set() for _ in range(n_docs)]

        for field_name, scorer in scorers.items():
            field_scores = np.zeros(n_docs)
            for term in terms:
                present = np.fromiter(
                    (term in freqs for freqs in scorer.doc_freqs), dtype=bool, count=n_docs
                )
                if not present.any():
                    continue
                # BM25+ gives every document a delta floor; only count real occurrences.
                field_scores += np.where(present, scorer.get_scores([term]), 0.0)
            for doc_idx in np.flatnonzero(field_scores > 0):
                matched[doc_idx].add(field_name)
            totals += field_scores * self.field_weights[field_name]

        ranked = sorted(
            (i for i in range(n_docs) if totals[i] > 0),
            key=lambda i: (-totals[i], i),
        )[:limit]

        results = [
            KeywordSearchResult(
                recording=recordings[i],
                score=float(totals[i]),
                matched_fields=frozenset(matched[i]),
            )
            for i in ranked
        ]
        logger.debug("Keyword search %r: %d results", query, len(results))
        return results

    def clear(self) -> None:
        """Drop the index; the next search raises until it is rebuilt."""
        with self._lock:
            self._recordings = None
            self._scorers = {}
            self._last_built = None
        logger.info("Keyword index cleared")

    def get_stats(self) -> dict[str, Any]:
        with self._lock:
            return {
                "is_built": self._recordings is not None,
                "index_size": len(self._recordings) if self._recordings is not None else 0,
                "fields": sorted(self._scorers),
                "last_built": self._last_built.isoformat() if self._last_built else None,
            }
