"""Embedding provider backed by the OpenAI embeddings API."""

from __future__ import annotations

import logging
from typing import List, Optional

import httpx

from vaultfinder.embedding.base import EmbeddingProvider, Vector
from vaultfinder.errors import EmbeddingError

DEFAULT_OPENAI_URL = "https://api.openai.com/v1"
DEFAULT_OPENAI_MODEL = "text-embedding-3-small"

LOGGER = logging.getLogger(__name__)


class OpenAIEmbeddingProvider(EmbeddingProvider):
    name = "openai"

    def __init__(
        self,
        api_key: Optional[str],
        model: str = DEFAULT_OPENAI_MODEL,
        *,
        base_url: str = DEFAULT_OPENAI_URL,
        client: Optional[httpx.Client] = None,
        request_timeout: float = 60.0,
        batch_size: int = 256,
    ) -> None:
        super().__init__(batch_size=batch_size)
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.request_timeout = request_timeout
        self._client = client or httpx.Client()

    def get_dimensions(self) -> int:
        return 3072 if "large" in self.model else 1536

    def is_available(self) -> bool:
        # key presence only, no network probe
        return bool(self.api_key)

    def _embed_batch(self, texts: List[str], *, query: bool = False) -> List[Vector]:
        response = self._client.post(
            f"{self.base_url}/embeddings",
            headers={"Authorization": f"Bearer {self.api_key}"},
            json={"model": self.model, "input": texts},
            timeout=self.request_timeout,
        )
        response.raise_for_status()
        items = response.json().get("data")
        if not isinstance(items, list):
            raise EmbeddingError("OpenAI response has no data array")
        ordered = sorted(items, key=lambda item: item.get("index", 0))
        return [item["embedding"] for item in ordered]

    def close(self) -> None:
        self._client.close()
