"""Embedding provider backed by a local Ollama server."""

from __future__ import annotations

import logging
from typing import List, Optional

import httpx

from vaultfinder.embedding.base import EmbeddingProvider, Vector
from vaultfinder.errors import EmbeddingError

DEFAULT_OLLAMA_URL = "http://localhost:11434"
DEFAULT_OLLAMA_MODEL = "nomic-embed-text"

# Output sizes of common Ollama embedding models, matched by substring.
KNOWN_DIMENSIONS = {
    "nomic": 768,
    "mxbai": 1024,
    "all-minilm": 384,
    "bge-m3": 1024,
    "snowflake-arctic-embed": 1024,
}
FALLBACK_DIMENSIONS = 384

LOGGER = logging.getLogger(__name__)


class OllamaEmbeddingProvider(EmbeddingProvider):
    """Calls ``POST /api/embed`` on an Ollama server.

    nomic-embed-text expects task prefixes (``search_document:`` for indexed
    text, ``search_query:`` for queries); they are added here.
    """

    name = "ollama"

    def __init__(
        self,
        url: str = DEFAULT_OLLAMA_URL,
        model: str = DEFAULT_OLLAMA_MODEL,
        *,
        client: Optional[httpx.Client] = None,
        request_timeout: float = 60.0,
        probe_timeout: float = 3.0,
        batch_size: int = 32,
    ) -> None:
        super().__init__(batch_size=batch_size, probe_timeout=probe_timeout)
        self.url = url.rstrip("/")
        self.model = model
        self.request_timeout = request_timeout
        self._client = client or httpx.Client()
        self._dimensions = next(
            (size for key, size in KNOWN_DIMENSIONS.items() if key in model), FALLBACK_DIMENSIONS
        )

    def get_dimensions(self) -> int:
        return self._dimensions

    def is_available(self) -> bool:
        try:
            response = self._client.get(f"{self.url}/api/tags", timeout=self.probe_timeout)
            if response.status_code != 200:
                return False
            models = response.json().get("models") or []
            return any(
                self.model in str(entry.get("name", "")) for entry in models if isinstance(entry, dict)
            )
        except (httpx.HTTPError, ValueError, AttributeError, TypeError) as exc:
            LOGGER.debug("Ollama not reachable at %s: %s", self.url, exc)
            return False

    def _prefix(self, text: str, query: bool) -> str:
        if "nomic" not in self.model:
            return text
        return f"search_query: {text}" if query else f"search_document: {text}"

    def _embed_batch(self, texts: List[str], *, query: bool = False) -> List[Vector]:
        response = self._client.post(
            f"{self.url}/api/embed",
            json={"model": self.model, "input": [self._prefix(text, query) for text in texts]},
            timeout=self.request_timeout,
        )
        response.raise_for_status()
        data = response.json()
        embeddings = data.get("embeddings")
        if embeddings is None and data.get("embedding"):
            embeddings = [data["embedding"]]
        if not isinstance(embeddings, list):
            raise EmbeddingError(f"Ollama response has no embeddings: {sorted(data)}")
        return embeddings

    def _observe_dimensions(self, dimensions: int) -> None:
        if dimensions != self._dimensions:
            LOGGER.info(
                "Model %s returns %d dimensions (expected %d)", self.model, dimensions, self._dimensions
            )
            self._dimensions = dimensions

    def close(self) -> None:
        self._client.close()
