"""Tests for SQLiteVectorStore."""

from __future__ import annotations

from pathlib import Path

import numpy as np
import pytest

from vaultfinder.index.storage import SQLiteVectorStore, cosine_similarity
from vaultfinder.models import VectorRecord


def _record(document_id: str, index: int, embedding, text: str = "text", modified: float = 10.0) -> VectorRecord:
    return VectorRecord(
        id=VectorRecord.make_id(document_id, index),
        document_id=document_id,
        chunk_index=index,
        text=text,
        embedding=embedding,
        headings=["H"],
        tags=["t"],
        modified=modified,
    )


class TestCosineSimilarity:
    """Test cosine_similarity helper."""

    def test_identical(self) -> None:
        assert cosine_similarity([1.0, 2.0], [1.0, 2.0]) == pytest.approx(1.0)

    def test_orthogonal(self) -> None:
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)

    def test_zero_and_mismatched(self) -> None:
        """Degenerate inputs score 0 instead of raising."""
        assert cosine_similarity([0.0, 0.0], [1.0, 1.0]) == 0.0
        assert cosine_similarity([1.0], [1.0, 0.0]) == 0.0


class TestSQLiteVectorStore:
    """Test SQLiteVectorStore initialization and schema."""

    def test_init_creates_database(self, tmp_path: Path) -> None:
        db_path = tmp_path / "new.db"
        assert not db_path.exists()

        store = SQLiteVectorStore(db_path)

        assert db_path.exists()
        assert store.db_path == db_path
        store.close()

    def test_schema_creation(self, store: SQLiteVectorStore) -> None:
        """Test that schema is properly created."""
        with store.transaction() as conn:
            rows = conn.execute("SELECT name FROM sqlite_master WHERE type='table'").fetchall()
        names = {row[0] for row in rows}
        assert {"vectors", "metadata"} <= names

    def test_reopen_keeps_data(self, tmp_path: Path) -> None:
        """Records persist across connections."""
        db_path = tmp_path / "persist.db"
        store = SQLiteVectorStore(db_path)
        store.upsert([_record("a.md", 0, [1.0, 0.0])])
        store.close()

        reopened = SQLiteVectorStore(db_path)
        assert reopened.get_stats().chunks == 1
        reopened.close()


class TestUpsertAndGet:
    """Test writes."""

    def test_round_trip(self, store: SQLiteVectorStore) -> None:
        """Stored records come back with metadata intact."""
        store.upsert([_record("notes/a.md", 0, [0.5, 0.25], text="hello")])

        record = store.get("notes/a.md#0")

        assert record is not None
        assert record.text == "hello"
        assert record.headings == ["H"]
        assert record.tags == ["t"]
        assert record.modified == 10.0
        np.testing.assert_allclose(record.embedding, [0.5, 0.25])

    def test_upsert_is_idempotent(self, store: SQLiteVectorStore) -> None:
        """Upserting the same id replaces the record."""
        store.upsert([_record("a.md", 0, [1.0, 0.0], text="first")])
        store.upsert([_record("a.md", 0, [0.0, 1.0], text="second")])

        assert store.get_stats().chunks == 1
        assert store.get("a.md#0").text == "second"

    def test_get_missing(self, store: SQLiteVectorStore) -> None:
        assert store.get("nope#0") is None

    def test_replace_document(self, store: SQLiteVectorStore) -> None:
        """Replacing drops chunks that no longer exist."""
        store.upsert([_record("a.md", i, [1.0, 0.0]) for i in range(3)])
        store.replace_document("a.md", [_record("a.md", 0, [0.0, 1.0])])

        assert store.get_stats().chunks == 1
        assert store.get("a.md#2") is None


class TestDeletion:
    """Test deletion and stats."""

    def test_delete_by_document_updates_stats(self, store: SQLiteVectorStore) -> None:
        """Deleting a document subtracts exactly its chunks."""
        store.upsert([_record("a.md", i, [1.0, 0.0]) for i in range(3)])
        store.upsert([_record("b.md", i, [0.0, 1.0]) for i in range(2)])

        assert store.delete_by_document("a.md") == 3

        stats = store.get_stats()
        assert stats.documents == 1
        assert stats.chunks == 2

    def test_delete_unknown_document(self, store: SQLiteVectorStore) -> None:
        assert store.delete_by_document("missing.md") == 0

    def test_clear(self, store: SQLiteVectorStore) -> None:
        store.upsert([_record("a.md", 0, [1.0, 0.0])])
        store.clear()
        assert store.get_stats().chunks == 0

    def test_last_updated(self, store: SQLiteVectorStore) -> None:
        """The last indexing time is persisted in metadata."""
        assert store.get_stats().last_updated == 0.0
        store.set_last_updated(1234.5)
        assert store.get_stats().last_updated == 1234.5

    def test_list_documents(self, store: SQLiteVectorStore) -> None:
        store.upsert([_record("b.md", 0, [1.0]), _record("a.md", 0, [1.0]), _record("a.md", 1, [1.0])])
        assert store.list_documents() == [
            {"document_id": "a.md", "chunks": 2, "modified": 10.0},
            {"document_id": "b.md", "chunks": 1, "modified": 10.0},
        ]


class TestSearch:
    """Test similarity search."""

    @pytest.fixture
    def populated(self, store: SQLiteVectorStore) -> SQLiteVectorStore:
        store.upsert(
            [
                _record("projects/a.md", 0, [1.0, 0.0, 0.0]),
                _record("projects/a.md", 1, [0.7, 0.7, 0.0]),
                _record("archive/b.md", 0, [0.0, 1.0, 0.0]),
                _record("projects-old/c.md", 0, [0.9, 0.1, 0.0]),
            ]
        )
        return store

    def test_exact_embedding_ranks_first(self, populated: SQLiteVectorStore) -> None:
        """Searching with a stored embedding returns that chunk with score ~1."""
        results = populated.search([0.0, 1.0, 0.0], top_k=4)

        assert results[0].record.id == "archive/b.md#0"
        assert results[0].score == pytest.approx(1.0)
        scores = [item.score for item in results]
        assert scores == sorted(scores, reverse=True)

    def test_top_k(self, populated: SQLiteVectorStore) -> None:
        assert len(populated.search([1.0, 0.0, 0.0], top_k=2)) == 2
        assert populated.search([1.0, 0.0, 0.0], top_k=0) == []

    def test_threshold_above_maximum_returns_nothing(self, populated: SQLiteVectorStore) -> None:
        """No cosine score can exceed 1."""
        for query in ([1.0, 0.0, 0.0], [0.3, 0.3, 0.3], [0.0, 1.0, 0.0]):
            assert populated.search(query, top_k=10, threshold=1.01) == []

    def test_threshold_filters(self, populated: SQLiteVectorStore) -> None:
        results = populated.search([1.0, 0.0, 0.0], top_k=10, threshold=0.8)
        assert {item.record.id for item in results} == {"projects/a.md#0", "projects-old/c.md#0"}

    def test_folder_filter_is_prefix(self, populated: SQLiteVectorStore) -> None:
        """Only ids starting with the folder are returned."""
        results = populated.search([1.0, 1.0, 0.0], top_k=10, folder="projects/")
        assert results
        assert all(item.record.document_id.startswith("projects/") for item in results)

    def test_folder_filter_escapes_wildcards(self, store: SQLiteVectorStore) -> None:
        """Folder names are matched literally."""
        store.upsert([_record("a_b/x.md", 0, [1.0]), _record("aXb/y.md", 0, [1.0])])
        results = store.search([1.0], top_k=10, folder="a_b/")
        assert [item.record.document_id for item in results] == ["a_b/x.md"]

    def test_dimension_mismatch_scores_zero(self, populated: SQLiteVectorStore) -> None:
        """Records of another dimension never match."""
        populated.upsert([_record("other.md", 0, [1.0, 0.0])])

        results = populated.search([1.0, 0.0, 0.0], top_k=10)
        mismatched = [item for item in results if item.record.document_id == "other.md"]
        assert mismatched[0].score == 0.0
        filtered = populated.search([1.0, 0.0, 0.0], top_k=10, threshold=0.1)
        assert "other.md" not in {item.record.document_id for item in filtered}

    def test_zero_query(self, populated: SQLiteVectorStore) -> None:
        """A zero query vector matches nothing above a positive threshold."""
        assert populated.search([0.0, 0.0, 0.0], top_k=10, threshold=0.01) == []

    def test_ties_keep_insertion_order(self, store: SQLiteVectorStore) -> None:
        store.upsert([_record("first.md", 0, [1.0, 0.0]), _record("second.md", 0, [2.0, 0.0])])
        results = store.search([1.0, 0.0], top_k=2)
        assert [item.record.document_id for item in results] == ["first.md", "second.md"]

    def test_empty_store(self, store: SQLiteVectorStore) -> None:
        assert store.search([1.0, 0.0], top_k=5) == []


class TestNeedsReindex:
    """Test staleness checks."""

    def test_unknown_document(self, store: SQLiteVectorStore) -> None:
        assert store.needs_reindex("new.md", 1.0)

    def test_newer_and_older(self, store: SQLiteVectorStore) -> None:
        store.upsert([_record("a.md", 0, [1.0], modified=10.0)])
        assert store.needs_reindex("a.md", 11.0)
        assert not store.needs_reindex("a.md", 10.0)
        assert not store.needs_reindex("a.md", 9.0)
