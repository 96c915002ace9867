"""Shared fixtures."""

from __future__ import annotations

import pytest
from fakes import FakeEmbeddingService

from journal_search.ingestion.models import Recording


@pytest.fixture
def embedding_service() -> FakeEmbeddingService:
    return FakeEmbeddingService()


@pytest.fixture
def sample_recordings() -> list[Recording]:
    return [
        Recording(
            id="rec-1",
            title="Project Alpha kickoff",
            transcript=(
                "We kicked off Project Alpha today. The team agreed on the first milestone. "
                "I felt optimistic about the schedule."
            ),
            tags=("work", "alpha"),
        ),
        Recording(
            id="rec-2",
            title="Evening walk",
            transcript="I walked along the river after dinner. The air was cold and quiet.",
            context="Recorded outside",
            tags=("personal",),
        ),
        Recording(
            id="rec-3",
            title="Stress check-in",
            transcript="Feeling overwhelmed by deadlines this week. Too many meetings again.",
            summary="Stressed about workload.",
            tags=("health",),
        ),
    ]
