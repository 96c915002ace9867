from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings validated via Pydantic.

    Values are loaded from environment variables and/or a .env file.
    """

    # API Keys
    openai_api_key: str = ""

    # Supabase (recording store)
    supabase_url: str = ""
    supabase_key: str = ""
    recordings_table: str = "recordings"

    # Embeddings
    embedding_backend: str = "openai"
    embedding_model: str = "text-embedding-3-small"
    embedding_dimensions: int = 256

    # Vector store
    vector_db_path: str = "data/vectors.db"

    # Chunking
    similarity_threshold: float = 0.5
    max_chunk_tokens: int = 500

    # Retrieval
    rrf_k: float = 60.0
    candidate_multiplier: int = 2
    vector_min_score: float = 0.0
    search_limit: int = 20

    # App config
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance.

    Gracefully handles missing .env files (e.g. in CI/testing) by falling
    back to environment variables and defaults.
    """
    try:
        return Settings()
    except Exception:
        # If .env is missing or unreadable, build settings from env vars only.
        return Settings(_env_file=None)  # type: ignore[call-arg]


settings = get_settings()
