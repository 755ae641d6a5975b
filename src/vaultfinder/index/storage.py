"""SQLite vector store with in-process cosine similarity search."""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence

import numpy as np

from vaultfinder.models import IndexStats, VectorRecord

LOGGER = logging.getLogger(__name__)

LAST_UPDATED_KEY = "last_updated"


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity, 0.0 for zero-magnitude or mismatched vectors."""
    left = np.asarray(a, dtype="float64").ravel()
    right = np.asarray(b, dtype="float64").ravel()
    if left.shape != right.shape or left.size == 0:
        return 0.0
    magnitude = float(np.linalg.norm(left) * np.linalg.norm(right))
    if magnitude == 0.0:
        return 0.0
    return float(np.dot(left, right) / magnitude)


@dataclass(slots=True)
class ScoredRecord:
    record: VectorRecord
    score: float


class SQLiteVectorStore:
    """Persistence layer for chunk embeddings.

    A single connection is shared between threads; every statement runs
    under ``self._lock`` so searches can proceed while a background indexing
    run writes. Each upsert or document replace is committed atomically.
    """

    def __init__(self, db_path: Path | str) -> None:
        self.db_path = db_path if str(db_path) == ":memory:" else Path(db_path)
        self._lock = threading.RLock()
        self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL;")
        self._conn.execute("PRAGMA synchronous=NORMAL;")
        self._ensure_schema()

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            try:
                yield self._conn
                self._conn.commit()
            except Exception:
                self._conn.rollback()
                raise

    def _ensure_schema(self) -> None:
        with self.transaction() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS vectors (
                    id TEXT PRIMARY KEY,
                    document_id TEXT NOT NULL,
                    chunk_index INTEGER NOT NULL,
                    text TEXT NOT NULL,
                    headings TEXT NOT NULL DEFAULT '[]',
                    tags TEXT NOT NULL DEFAULT '[]',
                    modified REAL NOT NULL,
                    embedding BLOB NOT NULL
                )
                """
            )
            conn.execute(
                """CREATE INDEX IF NOT EXISTS idx_vectors_document_id
                    ON vectors(document_id)
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS metadata (
                    key TEXT PRIMARY KEY,
                    value TEXT
                )
                """
            )

    def upsert(self, records: Sequence[VectorRecord]) -> None:
        """Insert or replace records by id in one transaction."""
        with self.transaction() as conn:
            self._write(conn, records)

    def replace_document(self, document_id: str, records: Sequence[VectorRecord]) -> None:
        """Drop every record of ``document_id`` and write ``records`` atomically."""
        with self.transaction() as conn:
            conn.execute("DELETE FROM vectors WHERE document_id = ?", (document_id,))
            self._write(conn, records)

    @staticmethod
    def _write(conn: sqlite3.Connection, records: Sequence[VectorRecord]) -> None:
        conn.executemany(
            """
            INSERT OR REPLACE INTO vectors(
                id, document_id, chunk_index, text, headings, tags, modified, embedding
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [
                (
                    record.id,
                    record.document_id,
                    record.chunk_index,
                    record.text,
                    json.dumps(list(record.headings), ensure_ascii=True),
                    json.dumps(list(record.tags), ensure_ascii=True),
                    float(record.modified),
                    sqlite3.Binary(np.asarray(record.embedding, dtype="float32").tobytes()),
                )
                for record in records
            ],
        )

    def delete_by_document(self, document_id: str) -> int:
        with self.transaction() as conn:
            cursor = conn.execute("DELETE FROM vectors WHERE document_id = ?", (document_id,))
        return cursor.rowcount

    def clear(self) -> None:
        with self.transaction() as conn:
            conn.execute("DELETE FROM vectors")
        LOGGER.info("Vector store cleared")

    def search(
        self,
        query_vector: Sequence[float],
        top_k: int = 5,
        *,
        folder: Optional[str] = None,
        threshold: Optional[float] = None,
    ) -> List[ScoredRecord]:
        """Rank records by cosine similarity to ``query_vector``.

        ``folder`` restricts candidates to document ids starting with it,
        ``threshold`` drops scores below it. Equal scores keep insertion order.
        """
        if top_k <= 0:
            return []

        sql = "SELECT * FROM vectors"
        params: tuple = ()
        if folder:
            sql += " WHERE substr(document_id, 1, ?) = ?"
            params = (len(folder), folder)
        with self._lock:
            rows = self._conn.execute(sql + " ORDER BY rowid", params).fetchall()

        if not rows:
            return []

        scores = self._score(np.asarray(query_vector, dtype="float32").ravel(), rows)
        candidates = [
            position
            for position in range(len(rows))
            if threshold is None or scores[position] >= threshold
        ]
        # sorted() is stable, so ties stay in rowid order
        ranked = sorted(candidates, key=lambda position: -scores[position])[:top_k]
        return [ScoredRecord(self._to_record(rows[pos]), float(scores[pos])) for pos in ranked]

    @staticmethod
    def _score(query: np.ndarray, rows: Sequence[sqlite3.Row]) -> np.ndarray:
        scores = np.zeros(len(rows), dtype="float64")
        query_norm = float(np.linalg.norm(query))
        if query_norm == 0.0:
            return scores

        # vectors of another dimension cannot match and keep a score of 0
        matching = [i for i, row in enumerate(rows) if len(row["embedding"]) == query.nbytes]
        if not matching:
            return scores

        matrix = np.vstack(
            [np.frombuffer(rows[i]["embedding"], dtype="float32") for i in matching]
        ).astype("float64")
        norms = np.linalg.norm(matrix, axis=1)
        dots = matrix @ query.astype("float64")
        with np.errstate(divide="ignore", invalid="ignore"):
            similarities = np.where(norms > 0, dots / (norms * query_norm), 0.0)
        scores[matching] = similarities
        return scores

    @staticmethod
    def _to_record(row: sqlite3.Row) -> VectorRecord:
        return VectorRecord(
            id=row["id"],
            document_id=row["document_id"],
            chunk_index=row["chunk_index"],
            text=row["text"],
            embedding=np.frombuffer(row["embedding"], dtype="float32"),
            headings=json.loads(row["headings"]) if row["headings"] else [],
            tags=json.loads(row["tags"]) if row["tags"] else [],
            modified=row["modified"],
        )

    def get(self, record_id: str) -> Optional[VectorRecord]:
        with self._lock:
            row = self._conn.execute("SELECT * FROM vectors WHERE id = ?", (record_id,)).fetchone()
        return self._to_record(row) if row else None

    def needs_reindex(self, document_id: str, modified: float) -> bool:
        """True when the document has no records or its newest record is older."""
        with self._lock:
            row = self._conn.execute(
                "SELECT MAX(modified) AS modified FROM vectors WHERE document_id = ?",
                (document_id,),
            ).fetchone()
        if row is None or row["modified"] is None:
            return True
        return row["modified"] < modified

    def get_stats(self) -> IndexStats:
        with self._lock:
            counts = self._conn.execute(
                "SELECT COUNT(DISTINCT document_id) AS documents, COUNT(*) AS chunks FROM vectors"
            ).fetchone()
            meta = self._conn.execute(
                "SELECT value FROM metadata WHERE key = ?", (LAST_UPDATED_KEY,)
            ).fetchone()
        return IndexStats(
            documents=counts["documents"],
            chunks=counts["chunks"],
            last_updated=float(meta["value"]) if meta else 0.0,
        )

    def set_last_updated(self, timestamp: float) -> None:
        with self.transaction() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO metadata(key, value) VALUES (?, ?)",
                (LAST_UPDATED_KEY, repr(float(timestamp))),
            )

    def list_documents(self) -> List[Dict[str, Any]]:
        """Indexed documents with their chunk count and stored modified time."""
        with self._lock:
            rows = self._conn.execute(
                """
                SELECT document_id, COUNT(*) AS chunks, MAX(modified) AS modified
                FROM vectors
                GROUP BY document_id
                ORDER BY document_id
                """
            ).fetchall()
        return [
            {"document_id": row["document_id"], "chunks": row["chunks"], "modified": row["modified"]}
            for row in rows
        ]
