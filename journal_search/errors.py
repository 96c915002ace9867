"""Exception types raised by the retrieval core."""

from __future__ import annotations


class JournalSearchError(Exception):
    """Base class for retrieval-core failures."""


class IndexNotReadyError(JournalSearchError):
    """The keyword index was queried before ``build_index`` was called."""


class SearchError(JournalSearchError):
    """Both vector and keyword search failed for one query."""

    def __init__(self, message: str, causes: list[BaseException] | None = None) -> None:
        super().__init__(message)
        self.causes = causes or []


class ModelNotReadyError(JournalSearchError):
    """The embedding model must be downloaded/initialised before use."""
