"""Embedding provider interface.

Every provider maps text to fixed-dimension vectors. Batches are sent in as
few requests as the provider allows; when a batch request fails the provider
retries item by item and substitutes a zero vector for every item that still
fails, so a batch call never fails as a whole. Callers that care about
degraded entries can check them with :func:`is_zero_vector`.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Iterable, List, Sequence

from vaultfinder.errors import EmbeddingError

LOGGER = logging.getLogger(__name__)

Vector = List[float]


def zero_vector(dimensions: int) -> Vector:
    return [0.0] * dimensions


def is_zero_vector(vector: Sequence[float]) -> bool:
    return not any(vector)


class EmbeddingProvider(ABC):
    """Base class for embedding providers.

    Subclasses implement :meth:`_embed_batch`, which may raise on failure, plus
    :meth:`get_dimensions` and :meth:`is_available`. ``query=True`` is passed
    for search queries so that providers can apply model-specific formatting.
    """

    name = "embedding"

    def __init__(self, *, batch_size: int = 32, probe_timeout: float = 3.0) -> None:
        self.batch_size = max(1, batch_size)
        self.probe_timeout = probe_timeout

    @abstractmethod
    def get_dimensions(self) -> int:
        ...

    @abstractmethod
    def is_available(self) -> bool:
        """Bounded reachability check. Must not raise."""

    @abstractmethod
    def _embed_batch(self, texts: List[str], *, query: bool = False) -> List[Vector]:
        ...

    def embed(self, text: str) -> Vector:
        return self.batch_embed([text])[0]

    def embed_query(self, text: str) -> Vector:
        """Embed a search query; may differ from :meth:`embed` for some models."""
        return self._embed_with_fallback([text], query=True)[0]

    def batch_embed(self, texts: Sequence[str] | Iterable[str]) -> List[Vector]:
        """Embed ``texts`` preserving order; failed items become zero vectors."""
        items = list(texts)
        vectors: List[Vector] = []
        for start in range(0, len(items), self.batch_size):
            vectors.extend(self._embed_with_fallback(items[start : start + self.batch_size]))
        return vectors

    def _embed_with_fallback(self, texts: List[str], *, query: bool = False) -> List[Vector]:
        if not texts:
            return []
        try:
            return self._checked_batch(texts, query=query)
        except Exception as exc:
            if len(texts) == 1:
                LOGGER.error("%s embedding failed: %s", self.name, exc)
                return [zero_vector(self.get_dimensions())]
            LOGGER.warning(
                "%s batch of %d texts failed (%s); retrying one by one", self.name, len(texts), exc
            )

        vectors: List[Vector] = []
        for position, text in enumerate(texts):
            try:
                vectors.append(self._checked_batch([text], query=query)[0])
            except Exception as exc:
                LOGGER.error("%s embedding failed for item %d: %s", self.name, position, exc)
                vectors.append(zero_vector(self.get_dimensions()))
        return vectors

    def _checked_batch(self, texts: List[str], *, query: bool) -> List[Vector]:
        vectors = self._embed_batch(texts, query=query)
        if len(vectors) != len(texts):
            raise EmbeddingError(f"expected {len(texts)} embeddings, got {len(vectors)}")
        for vector in vectors:
            if not vector:
                raise EmbeddingError("empty embedding in response")
        self._observe_dimensions(len(vectors[0]))
        return [list(map(float, vector)) for vector in vectors]

    def _observe_dimensions(self, dimensions: int) -> None:
        """Hook for providers whose dimension is only known from responses."""
