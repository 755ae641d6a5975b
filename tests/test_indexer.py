"""Tests for the indexing pipeline."""

from __future__ import annotations

import threading
from unittest.mock import patch

import httpx
import pytest

from conftest import FakeEmbedder, MemoryCorpus
from vaultfinder.embedding.ollama import OllamaEmbeddingProvider
from vaultfinder.errors import EmbeddingUnavailableError
from vaultfinder.index.indexer import Indexer
from vaultfinder.index.storage import SQLiteVectorStore
from vaultfinder.models import Document, VectorRecord

NOTE = "# Alpha\nalpha beta\n\n# Gamma\ngamma delta #tagged"


@pytest.fixture
def indexer(embedder: FakeEmbedder, store: SQLiteVectorStore) -> Indexer:
    return Indexer(embedder, store, exclude_folders=(".obsidian", "node_modules"))


class TestIndexDocument:
    """Test single document indexing."""

    def test_chunks_are_embedded_and_stored(self, indexer: Indexer, store: SQLiteVectorStore) -> None:
        """Each heading section becomes a record with outline metadata."""
        corpus = MemoryCorpus({"notes/a.md": NOTE})

        written = indexer.index_document(corpus.get("notes/a.md"))

        assert written == 2
        first = store.get("notes/a.md#0")
        second = store.get("notes/a.md#1")
        assert first.headings == ["Alpha"]
        assert second.headings == ["Gamma"]
        assert second.tags == ["tagged"]
        assert first.modified == 100.0
        assert list(second.embedding) == FakeEmbedder.vectorize(second.text)

    def test_uses_one_batch_per_document(self, indexer: Indexer, embedder: FakeEmbedder) -> None:
        """All chunks of a document are embedded together."""
        indexer.index_document(MemoryCorpus({"a.md": NOTE}).get("a.md"))
        assert len(embedder.calls) == 1
        assert len(embedder.calls[0]) == 2

    def test_unchanged_document_skipped(self, indexer: Indexer, embedder: FakeEmbedder) -> None:
        """Documents not modified since indexing are not re-embedded."""
        document = MemoryCorpus({"a.md": NOTE}).get("a.md")
        indexer.index_document(document)

        assert indexer.index_document(document) == 0
        assert len(embedder.calls) == 1

    def test_force_reindexes(self, indexer: Indexer, embedder: FakeEmbedder) -> None:
        document = MemoryCorpus({"a.md": NOTE}).get("a.md")
        indexer.index_document(document)
        assert indexer.index_document(document, force=True) == 2
        assert len(embedder.calls) == 2

    def test_modified_document_replaces_old_chunks(self, indexer: Indexer, store: SQLiteVectorStore) -> None:
        """Shrinking a document removes chunks that no longer exist."""
        corpus = MemoryCorpus({"a.md": NOTE})
        indexer.index_document(corpus.get("a.md"))

        corpus.add("a.md", "# Only\nalpha", modified=200.0)
        assert indexer.index_document(corpus.get("a.md")) == 1

        assert store.get_stats().chunks == 1
        assert store.get("a.md#1") is None
        assert store.get("a.md#0").headings == ["Only"]

    def test_emptied_document_removed(self, indexer: Indexer, store: SQLiteVectorStore) -> None:
        corpus = MemoryCorpus({"a.md": NOTE})
        indexer.index_document(corpus.get("a.md"))

        corpus.add("a.md", "   ", modified=200.0)
        assert indexer.index_document(corpus.get("a.md")) == 0
        assert store.get_stats().chunks == 0

    def test_provided_outline_is_used(self, indexer: Indexer, store: SQLiteVectorStore) -> None:
        """An empty outline from the corpus disables heading chunking."""
        document = Document(id="paper.pdf", modified=1.0, loader=lambda: NOTE, headings=[], tags=[])
        indexer.index_document(document)
        assert store.get("paper.pdf#0").headings == []
        assert store.get("paper.pdf#0").tags == []


class TestIndexCorpus:
    """Test whole corpus indexing."""

    def test_indexes_all_documents(self, indexer: Indexer, store: SQLiteVectorStore) -> None:
        corpus = MemoryCorpus({"a.md": NOTE, "b.md": "beta gamma"})
        progress = []

        stats = indexer.index_corpus(corpus, on_progress=lambda *args: progress.append(args))

        assert stats.documents == 2
        assert stats.chunks == 3
        assert stats.failed == []
        assert progress == [(1, 2, "a.md"), (2, 2, "b.md")]
        assert store.get_stats().last_updated == pytest.approx(stats.last_updated)
        assert stats.last_updated > 0

    def test_unavailable_embedder_leaves_store_untouched(self, store: SQLiteVectorStore) -> None:
        """No clearing or writing happens when embeddings cannot be computed."""
        store.upsert(
            [
                VectorRecord(id="old.md#0", document_id="old.md", chunk_index=0, text="old", embedding=[1.0])
            ]
        )
        indexer = Indexer(FakeEmbedder(available=False), store)

        with pytest.raises(EmbeddingUnavailableError):
            indexer.index_corpus(MemoryCorpus({"a.md": NOTE}), force=True)

        stats = store.get_stats()
        assert stats.chunks == 1
        assert stats.last_updated == 0.0
        assert store.get("old.md#0") is not None

    def test_malformed_ollama_listing_is_unavailable(self, store: SQLiteVectorStore) -> None:
        """An unexpected model listing from Ollama stops the run as unavailable."""
        client = httpx.Client(
            transport=httpx.MockTransport(lambda request: httpx.Response(200, json={"models": 5}))
        )
        indexer = Indexer(OllamaEmbeddingProvider(client=client), store)

        with pytest.raises(EmbeddingUnavailableError):
            indexer.index_corpus(MemoryCorpus({"a.md": NOTE}))
        assert store.get_stats().chunks == 0

    def test_force_clears_first(self, indexer: Indexer, store: SQLiteVectorStore) -> None:
        """A forced run drops documents that left the corpus."""
        indexer.index_corpus(MemoryCorpus({"gone.md": "alpha"}))
        indexer.index_corpus(MemoryCorpus({"a.md": "beta"}), force=True)
        assert [doc["document_id"] for doc in store.list_documents()] == ["a.md"]

    def test_failed_document_does_not_stop_run(self, indexer: Indexer) -> None:
        """A document that cannot be read is reported and skipped."""
        corpus = MemoryCorpus({"a.md": "alpha", "c.md": "gamma"})

        def broken() -> str:
            raise OSError("permission denied")

        documents = corpus.list()
        documents.insert(1, Document(id="b.md", modified=1.0, loader=broken))

        with patch.object(corpus, "list", return_value=documents):
            stats = indexer.index_corpus(corpus)

        assert stats.failed == ["b.md"]
        assert stats.documents == 2

    def test_store_failure_is_per_document(self, indexer: Indexer, store: SQLiteVectorStore) -> None:
        """Write errors are caught per document."""
        corpus = MemoryCorpus({"a.md": "alpha", "b.md": "beta"})
        original = store.replace_document

        def flaky(document_id, records):
            if document_id == "a.md":
                raise RuntimeError("disk full")
            return original(document_id, records)

        with patch.object(store, "replace_document", side_effect=flaky):
            stats = indexer.index_corpus(corpus)

        assert stats.failed == ["a.md"]
        assert [doc["document_id"] for doc in store.list_documents()] == ["b.md"]

    def test_excluded_folders(self, indexer: Indexer, store: SQLiteVectorStore) -> None:
        """Excluded folders match whole path segments."""
        corpus = MemoryCorpus(
            {
                ".obsidian/workspace.md": "alpha",
                "node_modules/pkg/readme.md": "beta",
                "node_modules_notes.md": "gamma",
                "notes/a.md": "delta",
            }
        )

        indexer.index_corpus(corpus)

        assert [doc["document_id"] for doc in store.list_documents()] == [
            "node_modules_notes.md",
            "notes/a.md",
        ]

    def test_cancellation_between_documents(self, indexer: Indexer) -> None:
        """Setting the cancel event stops the run after the current document."""
        cancel = threading.Event()
        corpus = MemoryCorpus({"a.md": "alpha", "b.md": "beta", "c.md": "gamma"})

        stats = indexer.index_corpus(
            corpus, on_progress=lambda *args: cancel.set(), cancel_event=cancel
        )

        assert stats.cancelled is True
        assert stats.documents == 1


class TestExclusion:
    """Test Indexer.is_excluded."""

    @pytest.mark.parametrize(
        ("document_id", "excluded"),
        [
            (".obsidian", True),
            (".obsidian/app.md", True),
            ("notes/.obsidian/app.md", False),
            ("node_modules2/x.md", False),
        ],
    )
    def test_is_excluded(self, indexer: Indexer, document_id: str, excluded: bool) -> None:
        assert indexer.is_excluded(document_id) is excluded

    def test_delete_document(self, indexer: Indexer, store: SQLiteVectorStore) -> None:
        indexer.index_document(MemoryCorpus({"a.md": NOTE}).get("a.md"))
        assert indexer.delete_document("a.md") == 2
        assert store.get_stats().chunks == 0
