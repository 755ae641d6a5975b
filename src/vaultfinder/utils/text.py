"""Text helpers: token estimation, paragraph grouping and keyword scoring."""

from __future__ import annotations

import math
import re
from typing import Iterable, List, Sequence, Tuple

from rank_bm25 import BM25Okapi

# Rough approximation, roughly four characters per token for English prose.
CHARS_PER_TOKEN = 4

WORD_PATTERN = re.compile(r"\w+")


def estimate_tokens(text: str) -> int:
    """Approximate the token count of ``text``."""
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def iter_paragraphs(lines: Sequence[str], first_line: int = 0) -> Iterable[Tuple[str, int, int]]:
    """Group consecutive non-blank lines into paragraphs.

    Yields ``(text, start_line, end_line)`` where line numbers are absolute,
    offset by ``first_line``.
    """
    buffer: List[str] = []
    start = 0
    for offset, line in enumerate(lines):
        if line.strip():
            if not buffer:
                start = offset
            buffer.append(line)
        elif buffer:
            yield "\n".join(buffer), first_line + start, first_line + offset - 1
            buffer = []
    if buffer:
        yield "\n".join(buffer), first_line + start, first_line + start + len(buffer) - 1


def normalize_whitespace(lines: Iterable[str]) -> str:
    """Collapse whitespace and join lines."""
    return "\n".join(line.strip() for line in lines if line.strip())


def tokenize(text: str) -> List[str]:
    return WORD_PATTERN.findall(text.lower())


def keyword_scores(
    query: str, documents: Sequence[str], *, k1: float = 1.5, b: float = 0.75
) -> List[float]:
    """BM25 score of ``query`` against each of ``documents``.

    The BM25 index is fit over ``documents`` only, which is enough to
    re-rank a small candidate set. Negative scores are clamped to zero.
    """
    if not documents:
        return []

    tokenized = [tokenize(doc) for doc in documents]
    query_terms = tokenize(query)
    if not query_terms or not any(tokenized):
        return [0.0] * len(documents)

    bm25 = BM25Okapi(tokenized, k1=k1, b=b)
    return [max(0.0, float(score)) for score in bm25.get_scores(query_terms)]


def blend_scores(semantic: float, keyword: float, semantic_weight: float = 0.7) -> float:
    """Combine a cosine score with a BM25 score (capped at 10 for normalisation)."""
    normalized_keyword = min(1.0, keyword / 10.0)
    return semantic_weight * semantic + (1 - semantic_weight) * normalized_keyword


def extract_keywords(content: str, *, limit: int = 10, min_length: int = 4) -> str:
    """First ``limit`` unique words of at least ``min_length`` characters."""
    seen: List[str] = []
    for word in re.sub(r"[^\w\s]", " ", content.lower()).split():
        if len(word) >= min_length and word not in seen:
            seen.append(word)
            if len(seen) == limit:
                break
    return " ".join(seen)
