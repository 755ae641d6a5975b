"""Shared test doubles for the indexing and search pipeline."""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional

import pytest

from vaultfinder.embedding.base import EmbeddingProvider, Vector
from vaultfinder.index.storage import SQLiteVectorStore
from vaultfinder.models import Document, SearchOptions, SearchResult

VOCABULARY = ("alpha", "beta", "gamma", "delta", "epsilon", "zeta", "eta", "theta")


class FakeEmbedder(EmbeddingProvider):
    """Bag-of-words embedder over a tiny vocabulary, one dimension per word."""

    name = "fake"

    def __init__(
        self,
        *,
        available: bool = True,
        fail_on: Iterable[str] = (),
        batch_size: int = 32,
    ) -> None:
        super().__init__(batch_size=batch_size)
        self.available = available
        self.fail_on = set(fail_on)
        self.calls: List[List[str]] = []
        self.query_calls: List[str] = []

    def get_dimensions(self) -> int:
        return len(VOCABULARY)

    def is_available(self) -> bool:
        return self.available

    def _embed_batch(self, texts: List[str], *, query: bool = False) -> List[Vector]:
        self.calls.append(list(texts))
        if query:
            self.query_calls.extend(texts)
        for text in texts:
            if any(marker in text for marker in self.fail_on):
                raise RuntimeError(f"cannot embed {text!r}")
        return [self.vectorize(text) for text in texts]

    @staticmethod
    def vectorize(text: str) -> Vector:
        words = text.lower().split()
        return [float(words.count(word)) for word in VOCABULARY]


class MemoryCorpus:
    """In-memory corpus source keyed by document id."""

    def __init__(self, texts: Optional[Dict[str, str]] = None, modified: float = 100.0) -> None:
        self.texts: Dict[str, str] = dict(texts or {})
        self.modified: Dict[str, float] = {doc_id: modified for doc_id in self.texts}

    def add(self, document_id: str, text: str, modified: float = 100.0) -> None:
        self.texts[document_id] = text
        self.modified[document_id] = modified

    def _document(self, document_id: str) -> Document:
        return Document(
            id=document_id,
            modified=self.modified[document_id],
            loader=lambda: self.texts[document_id],
        )

    def list(self) -> List[Document]:
        return [self._document(doc_id) for doc_id in sorted(self.texts)]

    def get(self, document_id: str) -> Optional[Document]:
        if document_id not in self.texts:
            return None
        return self._document(document_id)


class StaticBackend:
    """Search backend returning canned results and recording its calls."""

    def __init__(self, name: str, results: Optional[List[SearchResult]] = None, available: bool = True) -> None:
        self.name = name
        self.results = list(results or [])
        self.available = available
        self.probes = 0
        self.queries: List[tuple] = []

    def is_available(self) -> bool:
        self.probes += 1
        return self.available

    def search(self, query: str, options: Optional[SearchOptions] = None) -> List[SearchResult]:
        self.queries.append((query, options))
        return list(self.results)


@pytest.fixture
def embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def store():
    vector_store = SQLiteVectorStore(":memory:")
    yield vector_store
    vector_store.close()
