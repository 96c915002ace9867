"""Embedding service contract, model lifecycle, and the OpenAI backend."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from enum import StrEnum
from typing import Protocol

import numpy as np
from openai import AsyncOpenAI

from journal_search.config import Settings
from journal_search.errors import ModelNotReadyError
from journal_search.pipeline_config import EmbeddingBackend

logger = logging.getLogger(__name__)

# Inputs per embeddings request
EMBED_BATCH_SIZE = 100


# ---------------------------------------------------------------------------
# Vector helpers
# ---------------------------------------------------------------------------


def normalize(vector: Sequence[float] | np.ndarray) -> list[float]:
    """Scale a vector to unit L2 length.

    Raises:
        ValueError: for a zero vector, which has no direction.
    """
    arr = np.asarray(vector, dtype=np.float64)
    norm = float(np.linalg.norm(arr))
    if norm == 0.0:
        raise ValueError("Cannot normalize a zero vector")
    return (arr / norm).tolist()


def cosine_similarity(a: Sequence[float] | np.ndarray, b: Sequence[float] | np.ndarray) -> float:
    """Cosine similarity in [-1, 1]; 0.0 when either vector is all zeros."""
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    denominator = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if denominator == 0.0:
        return 0.0
    return float(np.dot(va, vb) / denominator)


# ---------------------------------------------------------------------------
# Model lifecycle
# ---------------------------------------------------------------------------


class ModelStatus(StrEnum):
    """Lifecycle states of an embedding model."""

    NOT_DOWNLOADED = "not_downloaded"
    DOWNLOADING = "downloading"
    READY = "ready"
    ERROR = "error"


@dataclass
class ModelLifecycle:
    """Pollable state machine: NOT_DOWNLOADED -> DOWNLOADING(progress) -> READY.

    Any state may move to ERROR; ERROR may restart a download.
    """

    status: ModelStatus = ModelStatus.NOT_DOWNLOADED
    progress: float = 0.0
    error: str | None = None

    @property
    def is_ready(self) -> bool:
        return self.status is ModelStatus.READY

    @property
    def needs_download(self) -> bool:
        return self.status in (ModelStatus.NOT_DOWNLOADED, ModelStatus.ERROR)

    def start_download(self) -> None:
        if self.status is ModelStatus.READY:
            return
        if self.status is ModelStatus.DOWNLOADING:
            raise RuntimeError("Model download already in progress")
        self.status = ModelStatus.DOWNLOADING
        self.progress = 0.0
        self.error = None

    def update_progress(self, progress: float) -> None:
        if self.status is not ModelStatus.DOWNLOADING:
            raise RuntimeError(f"Cannot report progress while {self.status}")
        self.progress = min(max(progress, 0.0), 1.0)

    def mark_ready(self) -> None:
        self.status = ModelStatus.READY
        self.progress = 1.0
        self.error = None

    def mark_failed(self, message: str) -> None:
        self.status = ModelStatus.ERROR
        self.error = message


# ---------------------------------------------------------------------------
# Service contract
# ---------------------------------------------------------------------------


class EmbeddingService(Protocol):
    """Text -> vector function consumed by the chunker and the search service."""

    @property
    def dimensions(self) -> int: ...

    @property
    def lifecycle(self) -> ModelLifecycle: ...

    async def download_model(self) -> None: ...

    async def embed(self, text: str) -> list[float]: ...

    async def embed_batch(self, texts: list[str]) -> list[list[float]]: ...


def ensure_ready(service: EmbeddingService) -> None:
    """Raise :class:`ModelNotReadyError` unless the model can embed right now."""
    lifecycle = service.lifecycle
    if not lifecycle.is_ready:
        detail = f": {lifecycle.error}" if lifecycle.error else ""
        raise ModelNotReadyError(f"Embedding model is {lifecycle.status}{detail}")


class OpenAIEmbeddingService:
    """Embeddings from the OpenAI API, L2-normalised on return.

    Remote models have nothing to fetch, so ``download_model`` verifies the
    configured model answers a one-input request and then marks it ready.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "text-embedding-3-small",
        dimensions: int = 256,
        client: AsyncOpenAI | None = None,
    ) -> None:
        self.model = model
        self._api_key = api_key
        self._dimensions = dimensions
        self._client = client
        self._lifecycle = ModelLifecycle()

    @property
    def dimensions(self) -> int:
        return self._dimensions

    @property
    def lifecycle(self) -> ModelLifecycle:
        return self._lifecycle

    @property
    def client(self) -> AsyncOpenAI:
        """Create the API client on first use so construction never needs a key."""
        if self._client is None:
            self._client = AsyncOpenAI(api_key=self._api_key or None)
        return self._client

    async def download_model(self) -> None:
        self._lifecycle.start_download()
        if self._lifecycle.is_ready:
            return
        try:
            vectors = await self._request(["ready"])
        except Exception as exc:
            logger.exception("Embedding model %s failed its readiness check", self.model)
            self._lifecycle.mark_failed(str(exc))
            raise
        if len(vectors[0]) != self._dimensions:
            message = (
                f"Model {self.model} returned {len(vectors[0])} dimensions, "
                f"expected {self._dimensions}"
            )
            self._lifecycle.mark_failed(message)
            raise ModelNotReadyError(message)
        self._lifecycle.mark_ready()
        logger.info("Embedding model %s ready (%d dims)", self.model, self._dimensions)

    async def embed(self, text: str) -> list[float]:
        vectors = await self.embed_batch([text])
        return vectors[0]

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        embeddings: list[list[float]] = []
        for i in range(0, len(texts), EMBED_BATCH_SIZE):
            embeddings.extend(await self._request(texts[i : i + EMBED_BATCH_SIZE]))
        return embeddings

    async def _request(self, texts: list[str]) -> list[list[float]]:
        response = await self.client.embeddings.create(
            input=texts,
            model=self.model,
            dimensions=self._dimensions,
        )
        return [normalize(item.embedding) for item in response.data]


def create_embedding_service(settings: Settings) -> EmbeddingService:
    """Build the embedding backend named in ``settings.embedding_backend``."""
    backend = EmbeddingBackend(settings.embedding_backend)
    if backend is EmbeddingBackend.OPENAI:
        return OpenAIEmbeddingService(
            api_key=settings.openai_api_key,
            model=settings.embedding_model,
            dimensions=settings.embedding_dimensions,
        )
    raise ValueError(f"Unsupported embedding backend: {backend}")
