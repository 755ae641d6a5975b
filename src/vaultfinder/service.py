"""Search orchestration across the internal index and external backends."""

from __future__ import annotations

import dataclasses
import logging
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence

from vaultfinder.backends.base import SearchBackend, SupportsFindRelated
from vaultfinder.backends.omnisearch import OmnisearchBackend
from vaultfinder.backends.smart_connections import ApiLookup, SmartConnectionsBackend
from vaultfinder.config import EMBEDDING_FIELDS, INDEXING_FIELDS, AppConfig
from vaultfinder.embedding.factory import create_embedding_provider
from vaultfinder.errors import (
    ConfigurationError,
    EmbeddingUnavailableError,
    IndexingInProgressError,
)
from vaultfinder.index.indexer import Indexer, ProgressCallback
from vaultfinder.index.jobs import IndexJob
from vaultfinder.index.search import InternalSearchBackend
from vaultfinder.index.storage import SQLiteVectorStore
from vaultfinder.ingestion.chunker import Chunker
from vaultfinder.ingestion.corpus import CorpusSource
from vaultfinder.models import IndexStats, SearchOptions, SearchResult

LOGGER = logging.getLogger(__name__)

CONTEXT_PREAMBLE = "Relevant context from vault:\n\n"
CONTEXT_SEPARATOR = "\n\n---\n\n"
RELATED_QUERY_CHARS = 200

_CONFIG_FIELDS = frozenset(field.name for field in dataclasses.fields(AppConfig))


def format_context(results: Sequence[SearchResult]) -> str:
    """Render results as one prompt-ready block; empty string for no results."""
    if not results:
        return ""
    parts = []
    for result in results:
        header = " > ".join([result.document_id, *result.headings])
        parts.append(f"# {header}\n{result.content}")
    return CONTEXT_PREAMBLE + CONTEXT_SEPARATOR.join(parts)


class SearchOrchestrator:
    """Routes retrieval calls to the first available backend by priority.

    The chosen backend is cached for the lifetime of the current settings; it
    is not re-probed on later calls, even if a higher-priority backend comes
    back. :meth:`update_settings` is the only way to reset the choice.
    """

    def __init__(
        self,
        config: AppConfig,
        internal: InternalSearchBackend,
        backends: Sequence[SearchBackend] = (),
    ) -> None:
        self.config = config
        self.internal = internal
        self._backends: Dict[str, SearchBackend] = {backend.name: backend for backend in backends}
        self._backends[internal.name] = internal
        self._active: Optional[SearchBackend] = None
        self._select_lock = threading.Lock()
        self._reindex_lock = threading.Lock()
        self._job: Optional[IndexJob] = None

    # -- selection ------------------------------------------------------------

    @property
    def active_backend_name(self) -> Optional[str]:
        active = self._active
        return active.name if active is not None else None

    def _select_backend(self) -> Optional[SearchBackend]:
        with self._select_lock:
            if self._active is not None:
                return self._active
            for name in self.config.provider_priority:
                backend = self._backends.get(name)
                if backend is None:
                    continue
                try:
                    available = backend.is_available()
                except Exception as exc:
                    LOGGER.warning("Availability check for %s failed: %s", name, exc)
                    available = False
                if available:
                    LOGGER.info("Using search backend: %s", name)
                    self._active = backend
                    return backend
            LOGGER.warning("No search backend available")
            return None

    def is_enabled(self) -> bool:
        return self.config.enable_rag

    # -- retrieval ------------------------------------------------------------

    def _default_options(self) -> SearchOptions:
        return SearchOptions(
            top_k=self.config.top_k,
            similarity_threshold=self.config.similarity_threshold,
            use_hybrid_search=self.config.use_hybrid_search,
        )

    def search(self, query: str, options: Optional[SearchOptions] = None) -> List[SearchResult]:
        if not self.is_enabled():
            return []
        merged = (options or SearchOptions()).merged_with(self._default_options())
        backend = self._select_backend()
        if backend is None:
            return []
        try:
            return backend.search(query, merged)
        except Exception:
            LOGGER.error("Search via %s failed", backend.name, exc_info=True)
            return []

    def find_related(self, content: str, top_k: Optional[int] = None) -> List[SearchResult]:
        if not self.is_enabled():
            return []
        top_k = self.config.top_k if top_k is None else top_k
        backend = self._select_backend()
        if backend is None:
            return []
        if isinstance(backend, SupportsFindRelated):
            try:
                return backend.find_related(content, top_k)
            except Exception:
                LOGGER.error("Related lookup via %s failed", backend.name, exc_info=True)
                return []
        return self.search(content[:RELATED_QUERY_CHARS], SearchOptions(top_k=top_k))

    def get_context_for_query(self, query: str, options: Optional[SearchOptions] = None) -> str:
        return format_context(self.search(query, options))

    # -- indexing -------------------------------------------------------------

    @property
    def current_job(self) -> Optional[IndexJob]:
        return self._job

    @contextmanager
    def _exclusive_indexing(self) -> Iterator[None]:
        """Hold the indexing slot; raises when a run already owns it."""
        if not self._reindex_lock.acquire(blocking=False):
            raise IndexingInProgressError("An indexing run is already in progress")
        try:
            if self._job is not None and self._job.is_running:
                raise IndexingInProgressError("An indexing run is already in progress")
            yield
        finally:
            self._reindex_lock.release()

    def reindex(
        self, force: bool = False, on_progress: Optional[ProgressCallback] = None
    ) -> IndexStats:
        """Index the whole corpus synchronously through the internal backend."""
        with self._exclusive_indexing():
            return self.internal.reindex(force=force, on_progress=on_progress)

    def start_reindex(
        self, force: bool = False, on_progress: Optional[ProgressCallback] = None
    ) -> IndexJob:
        """Start a background indexing run.

        Raises :class:`EmbeddingUnavailableError` right away when the embedding
        provider cannot be reached, so callers learn about it before a job
        exists.
        """
        with self._exclusive_indexing():
            corpus = self.internal.require_corpus()
            if not self.internal.embedder.is_available():
                raise EmbeddingUnavailableError(
                    f"Embedding provider '{self.internal.embedder.name}' is not available"
                )
            self._job = IndexJob(self.internal.indexer, corpus, force=force, on_progress=on_progress)
            return self._job.start()

    def index_document(self, document_id: str) -> int:
        return self.internal.index_document(document_id)

    def delete_document(self, document_id: str) -> int:
        return self.internal.delete_document(document_id)

    def get_stats(self) -> IndexStats:
        return self.internal.get_stats()

    # -- settings -------------------------------------------------------------

    def get_settings(self) -> AppConfig:
        return self.config

    def update_settings(self, **changes) -> AppConfig:
        """Apply configuration changes and forget the selected backend.

        Embedding and chunking changes are refused with
        :class:`IndexingInProgressError` while an indexing run is active, so a
        run never mixes two models or chunkers.
        """
        unknown = sorted(set(changes) - _CONFIG_FIELDS)
        if unknown:
            raise ConfigurationError(f"Unknown settings: {', '.join(unknown)}")
        config = dataclasses.replace(self.config, **changes)
        if INDEXING_FIELDS & set(changes):
            with self._exclusive_indexing():
                self.internal.configure(config, rebuild_embedder=bool(EMBEDDING_FIELDS & set(changes)))
        with self._select_lock:
            self.config = config
            self._active = None
        LOGGER.info("Settings updated: %s", ", ".join(sorted(changes)) or "none")
        return config

    def close(self) -> None:
        if self._job is not None and self._job.is_running:
            self._job.cancel()
            self._job.wait(timeout=5)
        for backend in self._backends.values():
            close = getattr(backend, "close", None)
            if callable(close):
                close()
        embedder_close = getattr(self.internal.embedder, "close", None)
        if callable(embedder_close):
            embedder_close()
        self.internal.store.close()


def build_orchestrator(
    config: AppConfig,
    corpus: Optional[CorpusSource] = None,
    *,
    store: Optional[SQLiteVectorStore] = None,
    backends: Optional[Sequence[SearchBackend]] = None,
    smart_connections: Optional[ApiLookup] = None,
) -> SearchOrchestrator:
    """Wire the default pipeline (embedder, chunker, SQLite store) from ``config``.

    ``smart_connections`` is the host's lookup for the Smart Connections
    plugin API; when given, that adapter is registered next to ``backends``.
    """
    if store is None:
        db_path = config.resolve_db_path(Path.cwd())
        db_path.parent.mkdir(parents=True, exist_ok=True)
        store = SQLiteVectorStore(db_path)
    indexer = Indexer(
        create_embedding_provider(config),
        store,
        Chunker(config.chunk_strategy, config.chunk_size, config.chunk_overlap),
        exclude_folders=config.exclude_folders,
    )
    registered: List[SearchBackend] = []
    if smart_connections is not None:
        registered.append(SmartConnectionsBackend(smart_connections))
    if backends is None:
        registered.append(OmnisearchBackend(config.omnisearch_url))
    else:
        registered.extend(backends)
    return SearchOrchestrator(config, InternalSearchBackend(indexer, corpus), registered)
