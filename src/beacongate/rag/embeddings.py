"""Text embeddings.

The default backend runs a local FastEmbed model; an OpenAI-compatible embedding endpoint is used
only when explicitly configured and an API key is present. Whatever the backend, the embedder
truncates input to a fixed length, enforces the configured dimension and returns unit vectors.
"""

from __future__ import annotations

from typing import Protocol, Sequence

import numpy as np
from fastembed import TextEmbedding
from openai import OpenAI

from beacongate.config import Settings
from beacongate.logging import get_logger

logger = get_logger(__name__)


class EmbeddingDimensionError(ValueError):
    """Raised when a backend returns vectors of the wrong size."""


class EmbeddingBackend(Protocol):
    model_name: str

    def embed(self, texts: Sequence[str]) -> list[list[float]]: ...


class FastEmbedBackend:
    """Local embeddings via fastembed. The model is loaded once, on first use."""

    def __init__(self, model_id: str) -> None:
        self.model_name = model_id
        self._model: TextEmbedding | None = None

    def _get_model(self) -> TextEmbedding:
        if self._model is None:
            logger.info("Loading local embedding model %s", self.model_name)
            self._model = TextEmbedding(model_name=self.model_name)
        return self._model

    def embed(self, texts: Sequence[str]) -> list[list[float]]:
        return [vec.tolist() for vec in self._get_model().embed(list(texts))]


class OpenAIEmbeddingBackend:
    """Embeddings from an OpenAI-compatible ``/embeddings`` endpoint."""

    def __init__(self, settings: Settings) -> None:
        if not settings.openai_api_key:
            raise ValueError("Missing BEACONGATE_OPENAI_API_KEY for OpenAI embeddings.")
        self.model_name = settings.openai_embedding_model
        self._dimensions = settings.embedding_dimension
        self._timeout = settings.openai_timeout_s
        self._client = OpenAI(api_key=settings.openai_api_key, base_url=settings.openai_base_url)

    def embed(self, texts: Sequence[str]) -> list[list[float]]:
        resp = self._client.embeddings.create(
            model=self.model_name,
            input=list(texts),
            dimensions=self._dimensions,
            timeout=self._timeout,
        )
        return [item.embedding for item in sorted(resp.data, key=lambda d: d.index)]


class Embedder:
    """Fixed-dimension, unit-normalized embeddings over a pluggable backend."""

    def __init__(self, backend: EmbeddingBackend, *, dimension: int = 384, max_chars: int = 512) -> None:
        self._backend = backend
        self.dimension = dimension
        self.max_chars = max_chars

    @property
    def model_name(self) -> str:
        return self._backend.model_name

    def embed(self, texts: Sequence[str]) -> list[list[float]]:
        """Embed texts in order.

        Raises:
            EmbeddingDimensionError: If any returned vector is not exactly ``dimension`` long.
        """

        if not texts:
            return []
        truncated = [t[: self.max_chars] for t in texts]
        raw = self._backend.embed(truncated)
        if len(raw) != len(truncated):
            raise EmbeddingDimensionError(f"Backend returned {len(raw)} vectors for {len(truncated)} texts")

        out: list[list[float]] = []
        for vec in raw:
            arr = np.asarray(vec, dtype=np.float32)
            if arr.ndim != 1 or arr.shape[0] != self.dimension:
                raise EmbeddingDimensionError(
                    f"Embedding dimension mismatch: expected {self.dimension}, got {arr.shape}"
                )
            norm = float(np.linalg.norm(arr))
            if norm > 0:
                arr = arr / norm
            out.append(arr.tolist())
        return out

    def embed_one(self, text: str) -> list[float]:
        return self.embed([text])[0]


def create_embedder(settings: Settings) -> Embedder:
    """Build the configured embedder; without an API key this is always the local model."""

    backend: EmbeddingBackend
    if settings.embedding_provider == "openai" and settings.openai_api_key:
        backend = OpenAIEmbeddingBackend(settings)
    else:
        if settings.embedding_provider == "openai":
            logger.warning("Embedding provider 'openai' requested without an API key; using local model")
        backend = FastEmbedBackend(settings.embedding_model_id)
    return Embedder(backend, dimension=settings.embedding_dimension, max_chars=settings.embedding_max_chars)
