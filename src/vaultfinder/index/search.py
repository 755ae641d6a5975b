"""Semantic search over the local vector store, exposed as a search backend."""

from __future__ import annotations

import logging
from typing import Callable, List, Optional

from vaultfinder.config import AppConfig
from vaultfinder.embedding.base import EmbeddingProvider, is_zero_vector
from vaultfinder.embedding.factory import create_embedding_provider
from vaultfinder.errors import ConfigurationError
from vaultfinder.index.indexer import Indexer, ProgressCallback
from vaultfinder.index.storage import ScoredRecord, SQLiteVectorStore
from vaultfinder.ingestion.chunker import Chunker
from vaultfinder.ingestion.corpus import CorpusSource
from vaultfinder.models import IndexStats, SearchOptions, SearchResult
from vaultfinder.utils.text import blend_scores, keyword_scores

LOGGER = logging.getLogger(__name__)

DEFAULT_TOP_K = 5
HYBRID_OVERFETCH = 3
RELATED_CONTENT_CHARS = 500


class InternalSearchBackend:
    """The Indexer + vector store pipeline as a :class:`SearchBackend`."""

    name = "internal"

    def __init__(
        self,
        indexer: Indexer,
        corpus: Optional[CorpusSource] = None,
        *,
        embedder_factory: Callable[[AppConfig], EmbeddingProvider] = create_embedding_provider,
        semantic_weight: float = 0.7,
    ) -> None:
        self.indexer = indexer
        self.corpus = corpus
        self.semantic_weight = semantic_weight
        self._embedder_factory = embedder_factory

    @property
    def embedder(self) -> EmbeddingProvider:
        return self.indexer.embedder

    @property
    def store(self) -> SQLiteVectorStore:
        return self.indexer.store

    def is_available(self) -> bool:
        return self.embedder.is_available()

    def search(self, query: str, options: Optional[SearchOptions] = None) -> List[SearchResult]:
        options = options or SearchOptions()
        top_k = DEFAULT_TOP_K if options.top_k is None else options.top_k
        hybrid = bool(options.use_hybrid_search)
        if top_k <= 0:
            return []

        query_vector = self.embedder.embed_query(query)
        if is_zero_vector(query_vector):
            LOGGER.warning("Query embedding failed, skipping vector search")
            return []

        scored = self.store.search(
            query_vector,
            top_k * HYBRID_OVERFETCH if hybrid else top_k,
            folder=options.folder,
            threshold=options.similarity_threshold,
        )
        results = [self._to_result(item) for item in scored]
        if hybrid and results:
            results = self._rerank(query, results)
        return results[:top_k]

    def find_related(self, content: str, top_k: int = DEFAULT_TOP_K) -> List[SearchResult]:
        """Notes whose chunks are close to the opening of ``content``.

        The snippet is embedded as document text, not as a query.
        """
        if top_k <= 0:
            return []
        vector = self.embedder.embed(content[:RELATED_CONTENT_CHARS])
        if is_zero_vector(vector):
            return []
        return [self._to_result(item) for item in self.store.search(vector, top_k)]

    def _rerank(self, query: str, results: List[SearchResult]) -> List[SearchResult]:
        keywords = keyword_scores(query, [result.content for result in results])
        for result, keyword in zip(results, keywords):
            result.score = blend_scores(result.score, keyword, self.semantic_weight)
        return sorted(results, key=lambda result: -result.score)

    @staticmethod
    def _to_result(item: ScoredRecord) -> SearchResult:
        record = item.record
        return SearchResult(
            document_id=record.document_id,
            content=record.text,
            score=item.score,
            chunk_index=record.chunk_index,
            headings=list(record.headings),
            tags=list(record.tags),
        )

    def reindex(
        self,
        *,
        force: bool = False,
        on_progress: Optional[ProgressCallback] = None,
    ) -> IndexStats:
        return self.indexer.index_corpus(
            self.require_corpus(), force=force, on_progress=on_progress
        )

    def index_document(self, document_id: str, *, force: bool = False) -> int:
        document = self.require_corpus().get(document_id)
        if document is None:
            LOGGER.info("Document %s no longer exists, removing it from the index", document_id)
            self.indexer.delete_document(document_id)
            return 0
        return self.indexer.index_document(document, force=force)

    def delete_document(self, document_id: str) -> int:
        return self.indexer.delete_document(document_id)

    def get_stats(self) -> IndexStats:
        return self.store.get_stats()

    def configure(self, config: AppConfig, *, rebuild_embedder: bool = True) -> None:
        """Apply chunking, exclusion and (optionally) embedding settings."""
        if rebuild_embedder:
            self.indexer.embedder = self._embedder_factory(config)
        self.indexer.chunker = Chunker(config.chunk_strategy, config.chunk_size, config.chunk_overlap)
        self.indexer.exclude_folders = tuple(config.exclude_folders)

    def require_corpus(self) -> CorpusSource:
        if self.corpus is None:
            raise ConfigurationError("No corpus configured for indexing")
        return self.corpus
