"""In-process embedding provider using sentence-transformers."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import List, Literal

from sentence_transformers import SentenceTransformer

from vaultfinder.config import DEFAULT_LOCAL_MODEL
from vaultfinder.embedding.base import EmbeddingProvider, Vector

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class EmbeddingConfig:
    model_name: str = DEFAULT_LOCAL_MODEL
    batch_size: int = 16
    normalize: bool = True
    backend: Literal["torch", "onnx", "openvino"] = "torch"
    device: str | None = None
    # used for zero vectors until the model has been loaded
    dimension_hint: int = 768


class SentenceTransformerProvider(EmbeddingProvider):
    """Thin wrapper around ``SentenceTransformer``.

    The model is loaded on first use; a model that fails to load makes the
    provider unavailable instead of failing construction.
    """

    name = "local"

    def __init__(self, config: EmbeddingConfig | None = None) -> None:
        self.config = config or EmbeddingConfig()
        super().__init__(batch_size=self.config.batch_size)
        self._model: SentenceTransformer | None = None
        self._load_lock = threading.Lock()
        self._dimension = self.config.dimension_hint

    def _load_model(self) -> SentenceTransformer:
        with self._load_lock:
            if self._model is None:
                self._model = SentenceTransformer(
                    self.config.model_name,
                    backend=self.config.backend,
                    device=self.config.device,
                )
                self._dimension = int(self._model.get_sentence_embedding_dimension())
                logger.info(
                    "Loaded %s | Backend: %s | Dimension: %d",
                    self.config.model_name,
                    self.config.backend,
                    self._dimension,
                )
        return self._model

    def get_dimensions(self) -> int:
        return self._dimension

    def is_available(self) -> bool:
        try:
            self._load_model()
        except Exception as exc:
            logger.warning("Unable to load %s: %s", self.config.model_name, exc)
            return False
        return True

    def _embed_batch(self, texts: List[str], *, query: bool = False) -> List[Vector]:
        embeddings = self._load_model().encode(
            texts,
            batch_size=self.config.batch_size,
            show_progress_bar=False,
            convert_to_numpy=True,
            normalize_embeddings=self.config.normalize,
        )
        return embeddings.astype("float32", copy=False).tolist()
