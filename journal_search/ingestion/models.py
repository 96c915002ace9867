"""Data models for the indexing pipeline."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


@dataclass(frozen=True)
class Recording:
    """A journal recording as read from the record store. Never mutated here."""

    id: str
    title: str = ""
    transcript: str = ""
    context: str = ""
    summary: str = ""
    tags: tuple[str, ...] = ()
    timestamp: datetime | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> Recording:
        """Build a Recording from a storage row, tolerating missing columns."""
        raw_ts = row.get("timestamp") or row.get("created_at")
        timestamp: datetime | None = None
        if isinstance(raw_ts, datetime):
            timestamp = raw_ts
        elif isinstance(raw_ts, str) and raw_ts:
            timestamp = datetime.fromisoformat(raw_ts.replace("Z", "+00:00"))
        return cls(
            id=str(row["id"]),
            title=row.get("title") or "",
            transcript=row.get("transcript") or "",
            context=row.get("context") or "",
            summary=row.get("summary") or "",
            tags=tuple(row.get("tags") or ()),
            timestamp=timestamp,
        )


@dataclass
class Chunk:
    """A retrieval-sized span of transcript text with its normalized embedding."""

    text: str
    embedding: list[float]
    # (start, end) sentence indices, end exclusive
    sentence_range: tuple[int, int] | None = None

    @property
    def token_count(self) -> int:
        """Approximate token count (1 token ~ 4 characters)."""
        return math.ceil(len(self.text) / 4)

    def to_dict(self) -> dict[str, Any]:
        return {
            "text": self.text,
            "embedding": self.embedding,
            "sentence_range": list(self.sentence_range) if self.sentence_range else None,
            "token_count": self.token_count,
        }


@dataclass
class IndexedChunk:
    """A chunk bound to the recording field it was derived from."""

    recording_id: str
    field: str
    chunk_index: int
    chunk_text: str
    embedding: list[float]
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
