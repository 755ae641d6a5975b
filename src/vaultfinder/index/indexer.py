"""Document indexing pipeline: chunk, embed, store."""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional, Sequence

from vaultfinder.embedding.base import EmbeddingProvider
from vaultfinder.errors import EmbeddingUnavailableError
from vaultfinder.index.storage import SQLiteVectorStore
from vaultfinder.ingestion.chunker import Chunker
from vaultfinder.ingestion.corpus import CorpusSource
from vaultfinder.ingestion.markdown import extract_tags, parse_outline
from vaultfinder.models import Document, IndexStats, VectorRecord

LOGGER = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int, str], None]


class Indexer:
    """Coordinates chunking, embedding and persistence of documents."""

    def __init__(
        self,
        embedder: EmbeddingProvider,
        store: SQLiteVectorStore,
        chunker: Optional[Chunker] = None,
        *,
        exclude_folders: Sequence[str] = (),
    ) -> None:
        self.embedder = embedder
        self.store = store
        self.chunker = chunker or Chunker()
        self.exclude_folders = tuple(exclude_folders)

    def is_excluded(self, document_id: str) -> bool:
        for folder in self.exclude_folders:
            prefix = folder.rstrip("/")
            if prefix and (document_id == prefix or document_id.startswith(prefix + "/")):
                return True
        return False

    def index_document(self, document: Document, *, force: bool = False) -> int:
        """(Re)index one document and return the number of chunks written.

        Up-to-date documents are skipped unless ``force`` is set. Store and
        read errors propagate.
        """
        if not force and not self.store.needs_reindex(document.id, document.modified):
            LOGGER.debug("Up to date: %s", document.id)
            return 0

        text = document.read()
        headings = document.headings if document.headings is not None else parse_outline(text)
        tags = document.tags if document.tags is not None else extract_tags(text)

        chunks = self.chunker.chunk(text, headings)
        if not chunks:
            LOGGER.debug("No content in %s", document.id)
            self.store.delete_by_document(document.id)
            return 0

        embeddings = self.embedder.batch_embed([chunk.text for chunk in chunks])
        records = [
            VectorRecord(
                id=VectorRecord.make_id(document.id, chunk.index),
                document_id=document.id,
                chunk_index=chunk.index,
                text=chunk.text,
                embedding=embedding,
                headings=chunk.headings,
                tags=list(tags),
                modified=document.modified,
            )
            for chunk, embedding in zip(chunks, embeddings)
        ]
        self.store.replace_document(document.id, records)
        LOGGER.debug("Indexed %s (%d chunks)", document.id, len(records))
        return len(records)

    def index_corpus(
        self,
        corpus: CorpusSource,
        *,
        force: bool = False,
        on_progress: Optional[ProgressCallback] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> IndexStats:
        """Index every non-excluded document of ``corpus`` sequentially.

        Raises :class:`EmbeddingUnavailableError` before touching the store when
        the embedding provider is unreachable. Failures on single documents are
        logged and reported in ``IndexStats.failed``.
        """
        if not self.embedder.is_available():
            raise EmbeddingUnavailableError(
                f"Embedding provider '{self.embedder.name}' is not available; "
                "make sure it is running and the configured model is installed"
            )

        if force:
            self.store.clear()

        documents = [doc for doc in corpus.list() if not self.is_excluded(doc.id)]
        total = len(documents)
        stats = IndexStats()
        LOGGER.info("Indexing %d documents%s", total, " (forced)" if force else "")

        for current, document in enumerate(documents, start=1):
            if cancel_event is not None and cancel_event.is_set():
                LOGGER.info("Indexing cancelled after %d of %d documents", current - 1, total)
                stats.cancelled = True
                break
            if on_progress is not None:
                on_progress(current, total, document.id)
            try:
                stats.record(document.id, self.index_document(document, force=force))
            except Exception:
                LOGGER.exception("Failed to index %s", document.id)
                stats.record_failure(document.id)

        stats.last_updated = time.time()
        self.store.set_last_updated(stats.last_updated)
        LOGGER.info(
            "Indexing done: %d documents, %d chunks, %d failed",
            stats.documents,
            stats.chunks,
            len(stats.failed),
        )
        return stats

    def delete_document(self, document_id: str) -> int:
        return self.store.delete_by_document(document_id)
