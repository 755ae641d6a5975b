"""Corpus sources feeding the indexer.

The indexing core only depends on :class:`CorpusSource`; :class:`DirectoryCorpus`
is the filesystem-backed source used by the CLI and the web service.
"""

from __future__ import annotations

import logging
from functools import partial
from pathlib import Path
from typing import List, Optional, Protocol, Sequence

from vaultfinder.ingestion.pdf_loader import read_pdf_text
from vaultfinder.models import Document
from vaultfinder.utils.files import DEFAULT_EXTENSIONS, is_within, iter_document_paths

LOGGER = logging.getLogger(__name__)


class CorpusSource(Protocol):
    def list(self) -> List[Document]:
        """All documents, in a stable order."""
        ...

    def get(self, document_id: str) -> Optional[Document]:
        ...


def _read_text(path: Path) -> str:
    return path.read_text(encoding="utf-8", errors="replace")


class DirectoryCorpus:
    """Markdown and PDF files below ``root``; ids are POSIX paths relative to it."""

    def __init__(self, root: Path, *, extensions: Sequence[str] = DEFAULT_EXTENSIONS) -> None:
        self.root = Path(root)
        self.extensions = tuple(ext.lower() for ext in extensions)

    def list(self) -> List[Document]:
        if not self.root.is_dir():
            LOGGER.warning("Corpus root %s is not a directory", self.root)
            return []
        return [self._document(path) for path in iter_document_paths([self.root], self.extensions)]

    def get(self, document_id: str) -> Optional[Document]:
        path = self.root / document_id
        if not is_within(path, self.root):
            LOGGER.warning("Rejected document id outside corpus root: %s", document_id)
            return None
        if not path.is_file() or path.suffix.lower() not in self.extensions:
            return None
        return self._document(path)

    def _document(self, path: Path) -> Document:
        document_id = path.relative_to(self.root).as_posix()
        modified = path.stat().st_mtime
        if path.suffix.lower() == ".pdf":
            return Document(
                id=document_id,
                modified=modified,
                loader=partial(read_pdf_text, path),
                headings=[],
                tags=[],
            )
        return Document(id=document_id, modified=modified, loader=partial(_read_text, path))
