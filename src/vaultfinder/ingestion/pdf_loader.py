"""PDF text extraction.

Uses PyMuPDF (fitz) for fast PDF text extraction. PDFs carry no heading
outline, so they are chunked with the fixed window strategy.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterator

import fitz  # PyMuPDF

from vaultfinder.utils.text import normalize_whitespace

LOGGER = logging.getLogger(__name__)


def iter_text_parts(path: Path) -> Iterator[str]:
    """Yield text content from a PDF file page by page."""
    try:
        doc = fitz.open(path)
    except Exception as exc:
        LOGGER.error("Failed to open PDF %s: %s", path, exc)
        return

    try:
        for index in range(len(doc)):
            try:
                text = doc[index].get_text() or ""
                normalized = normalize_whitespace(text.splitlines())
                if normalized:
                    yield normalized
            except Exception as exc:  # pragma: no cover - defensive path
                LOGGER.warning("Failed to read page %s in %s: %s", index, path, exc)
    finally:
        doc.close()


def read_pdf_text(path: Path) -> str:
    """Full text of a PDF, pages separated by a blank line."""
    return "\n\n".join(iter_text_parts(path))
