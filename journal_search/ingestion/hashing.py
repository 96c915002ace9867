"""Content hashing for index change detection."""

from __future__ import annotations

import hashlib
import json

from journal_search.ingestion.models import Recording


def compute_content_hash(content: str) -> str:
    """SHA-256 hex digest of ``content``."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def hash_recording(recording: Recording) -> str:
    """Hash every field the indexes are derived from.

    Any edit to title, transcript, context, summary or tags changes the hash,
    which tells the sync pass to re-embed the recording.
    """
    payload = json.dumps(
        {
            "title": recording.title,
            "transcript": recording.transcript,
            "context": recording.context,
            "summary": recording.summary,
            "tags": sorted(recording.tags),
        },
        ensure_ascii=False,
        sort_keys=True,
    )
    return compute_content_hash(payload)
