"""Record lookup contract and the Supabase-backed recording store."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol, cast

from supabase import Client, create_client

from journal_search.config import get_settings
from journal_search.ingestion.models import Recording

logger = logging.getLogger(__name__)

_RECORDING_COLUMNS = "id,title,transcript,context,summary,tags,timestamp"


class RecordingLookup(Protocol):
    """Resolves a recording id to its full record, or ``None`` if deleted."""

    async def get_recording(self, recording_id: str) -> Recording | None: ...


class RecordingSource(RecordingLookup, Protocol):
    """A lookup that can also enumerate every recording (used by index sync)."""

    async def list_recordings(self) -> list[Recording]: ...


def get_supabase_client() -> Client:
    """Create and return a Supabase client from settings."""
    settings = get_settings()
    return create_client(settings.supabase_url, settings.supabase_key)


class SupabaseRecordingStore:
    """Read-only access to recordings stored in a Supabase table."""

    def __init__(self, client: Client | None = None, table: str = "recordings") -> None:
        self._client = client
        self.table = table

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = get_supabase_client()
        return self._client

    async def get_recording(self, recording_id: str) -> Recording | None:
        query = (
            self.client.table(self.table)
            .select(_RECORDING_COLUMNS)
            .eq("id", recording_id)
            .limit(1)
        )
        # The Supabase client is synchronous; keep its HTTP round trip off the event loop.
        result = await asyncio.to_thread(query.execute)
        # Supabase .data is typed as JSON (broad union); cast to concrete type.
        rows = cast(list[dict[str, Any]], result.data)
        if not rows:
            logger.debug("Recording %s not found", recording_id)
            return None
        return Recording.from_row(rows[0])

    async def list_recordings(self) -> list[Recording]:
        query = (
            self.client.table(self.table)
            .select(_RECORDING_COLUMNS)
            .order("timestamp", desc=True)
        )
        result = await asyncio.to_thread(query.execute)
        rows = cast(list[dict[str, Any]], result.data)
        return [Recording.from_row(row) for row in rows]
