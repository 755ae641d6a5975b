"""Core VaultFinder data models."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence


@dataclass(slots=True)
class Heading:
    """One entry of a document outline; ``line`` is 0-based."""

    title: str
    level: int
    line: int


@dataclass(slots=True)
class Document:
    """A corpus entry. Text is loaded lazily through ``loader``.

    ``headings`` and ``tags`` left as ``None`` mean the corpus has no structural
    outline for the document and it should be derived from the text.
    """

    id: str
    modified: float
    loader: Callable[[], str] = field(repr=False)
    headings: Optional[List[Heading]] = None
    tags: Optional[List[str]] = None

    def read(self) -> str:
        return self.loader()


@dataclass(slots=True)
class Chunk:
    """Bounded span of a document's text with its heading breadcrumb."""

    index: int
    text: str
    headings: List[str]
    start_line: int
    end_line: int


@dataclass(slots=True)
class VectorRecord:
    """Embedded chunk as persisted in the vector store."""

    id: str
    document_id: str
    chunk_index: int
    text: str
    embedding: Sequence[float]
    headings: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    modified: float = 0.0

    @staticmethod
    def make_id(document_id: str, chunk_index: int) -> str:
        return f"{document_id}#{chunk_index}"


@dataclass(slots=True)
class IndexStats:
    documents: int = 0
    chunks: int = 0
    last_updated: float = 0.0
    failed: List[str] = field(default_factory=list)
    cancelled: bool = False

    def record(self, document_id: str, chunks: int) -> None:
        if chunks > 0:
            self.documents += 1
            self.chunks += chunks

    def record_failure(self, document_id: str) -> None:
        self.failed.append(document_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "documents": self.documents,
            "chunks": self.chunks,
            "last_updated": self.last_updated,
            "failed": list(self.failed),
            "cancelled": self.cancelled,
        }


@dataclass(slots=True)
class SearchResult:
    document_id: str
    content: str
    score: float
    chunk_index: Optional[int] = None
    headings: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)

    @property
    def metadata(self) -> Dict[str, List[str]]:
        return {"headings": list(self.headings), "tags": list(self.tags)}


@dataclass(slots=True)
class SearchOptions:
    """Per-call search options. ``None`` means "use the configured default"."""

    top_k: Optional[int] = None
    folder: Optional[str] = None
    similarity_threshold: Optional[float] = None
    use_hybrid_search: Optional[bool] = None

    def merged_with(self, defaults: "SearchOptions") -> "SearchOptions":
        return SearchOptions(
            top_k=self.top_k if self.top_k is not None else defaults.top_k,
            folder=self.folder if self.folder is not None else defaults.folder,
            similarity_threshold=(
                self.similarity_threshold
                if self.similarity_threshold is not None
                else defaults.similarity_threshold
            ),
            use_hybrid_search=(
                self.use_hybrid_search
                if self.use_hybrid_search is not None
                else defaults.use_hybrid_search
            ),
        )
