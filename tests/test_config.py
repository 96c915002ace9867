"""Tests for Settings, the backend enum, and the tuning dataclasses."""

from __future__ import annotations

import pytest

from journal_search.config import Settings
from journal_search.pipeline_config import ChunkingConfig, EmbeddingBackend, RetrievalConfig

# ---------------------------------------------------------------------------
# Enum tests
# ---------------------------------------------------------------------------


class TestEmbeddingBackend:
    def test_values(self) -> None:
        assert EmbeddingBackend.OPENAI.value == "openai"

    def test_from_string(self) -> None:
        assert EmbeddingBackend("openai") is EmbeddingBackend.OPENAI

    def test_invalid_raises(self) -> None:
        with pytest.raises(ValueError):
            EmbeddingBackend("invalid")

    def test_is_str_subclass(self) -> None:
        """Enum values behave as plain strings for JSON serialization."""
        assert isinstance(EmbeddingBackend.OPENAI, str)


# ---------------------------------------------------------------------------
# Settings tests
# ---------------------------------------------------------------------------


class TestSettings:
    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        for name in ("RRF_K", "SIMILARITY_THRESHOLD", "MAX_CHUNK_TOKENS", "EMBEDDING_BACKEND"):
            monkeypatch.delenv(name, raising=False)
        settings = Settings(_env_file=None)  # type: ignore[call-arg]
        assert settings.rrf_k == 60.0
        assert settings.similarity_threshold == 0.5
        assert settings.max_chunk_tokens == 500
        assert settings.embedding_backend == "openai"

    def test_env_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("RRF_K", "30")
        monkeypatch.setenv("VECTOR_DB_PATH", "/tmp/journal.db")
        settings = Settings(_env_file=None)  # type: ignore[call-arg]
        assert settings.rrf_k == 30.0
        assert settings.vector_db_path == "/tmp/journal.db"


# ---------------------------------------------------------------------------
# Tuning dataclass tests
# ---------------------------------------------------------------------------


class TestChunkingConfig:
    def test_defaults(self) -> None:
        cfg = ChunkingConfig()
        assert cfg.similarity_threshold == 0.5
        assert cfg.max_chunk_tokens == 500

    def test_from_settings(self) -> None:
        settings = Settings(  # type: ignore[call-arg]
            _env_file=None, similarity_threshold=0.7, max_chunk_tokens=120
        )
        cfg = ChunkingConfig.from_settings(settings)
        assert cfg.similarity_threshold == 0.7
        assert cfg.max_chunk_tokens == 120

    def test_immutable(self) -> None:
        cfg = ChunkingConfig()
        with pytest.raises(AttributeError):
            cfg.max_chunk_tokens = 10  # type: ignore[misc]


class TestRetrievalConfig:
    def test_defaults(self) -> None:
        cfg = RetrievalConfig()
        assert cfg.rrf_k == 60.0
        assert cfg.candidate_multiplier == 2
        assert cfg.default_limit == 20

    def test_from_settings(self) -> None:
        settings = Settings(  # type: ignore[call-arg]
            _env_file=None, rrf_k=10.0, candidate_multiplier=3, vector_min_score=0.2, search_limit=5
        )
        cfg = RetrievalConfig.from_settings(settings)
        assert cfg == RetrievalConfig(
            rrf_k=10.0, candidate_multiplier=3, vector_min_score=0.2, default_limit=5
        )

    def test_immutable(self) -> None:
        cfg = RetrievalConfig()
        with pytest.raises(AttributeError):
            cfg.rrf_k = 1.0  # type: ignore[misc]
