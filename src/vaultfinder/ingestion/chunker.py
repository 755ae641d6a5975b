"""Split document text into ordered, bounded chunks.

Three strategies are supported:

- ``heading``: one chunk per heading section, with a breadcrumb of ancestor
  headings. Sections larger than ``max_size`` are split on paragraph
  boundaries and keep the section breadcrumb.
- ``fixed``: a sliding window over lines with ``overlap`` tokens shared
  between consecutive windows.
- ``smart``: ``heading`` followed by a paragraph re-split of anything still
  above ``max_size`` (this includes the unheaded leading chunk).

Sizes are measured with :func:`estimate_tokens`, a character based
approximation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

from vaultfinder.errors import ConfigurationError
from vaultfinder.models import Chunk, Heading
from vaultfinder.utils.text import estimate_tokens, iter_paragraphs

LOGGER = logging.getLogger(__name__)

STRATEGIES = ("heading", "fixed", "smart")


@dataclass(slots=True)
class _Span:
    text: str
    headings: List[str]
    start_line: int
    end_line: int


class Chunker:
    """Turns text plus an optional heading outline into :class:`Chunk` objects."""

    def __init__(self, strategy: str = "heading", max_size: int = 512, overlap: int = 50) -> None:
        if strategy not in STRATEGIES:
            raise ConfigurationError(
                f"Unknown chunk strategy {strategy!r}; expected one of {', '.join(STRATEGIES)}"
            )
        if max_size <= 0:
            raise ConfigurationError("max_size must be positive")
        if overlap < 0 or overlap >= max_size:
            raise ConfigurationError("overlap must be in [0, max_size)")
        self.strategy = strategy
        self.max_size = max_size
        self.overlap = overlap

    def chunk(self, text: str, headings: Optional[Sequence[Heading]] = None) -> List[Chunk]:
        if not text.strip():
            return []

        lines = text.split("\n")
        outline = sorted(
            (h for h in headings or () if 0 <= h.line < len(lines)), key=lambda h: h.line
        )

        if self.strategy == "fixed" or not outline:
            spans = self._chunk_fixed(lines)
        elif self.strategy == "heading":
            spans = self._chunk_by_headings(lines, outline)
        else:
            spans = [
                piece
                for span in self._chunk_by_headings(lines, outline)
                for piece in self._split_if_oversized(span)
            ]

        return self._number(spans)

    def _chunk_by_headings(self, lines: List[str], outline: Sequence[Heading]) -> List[_Span]:
        spans: List[_Span] = []

        leading_end = outline[0].line - 1
        if leading_end >= 0:
            leading = "\n".join(lines[: leading_end + 1])
            if leading.strip():
                spans.append(_Span(leading, [], 0, leading_end))

        breadcrumb: List[str] = []
        for position, heading in enumerate(outline):
            start = heading.line
            if position + 1 < len(outline):
                end = outline[position + 1].line - 1
            else:
                end = len(lines) - 1

            breadcrumb = breadcrumb[: max(heading.level - 1, 0)]
            breadcrumb.append(heading.title)

            if end < start:
                continue
            section = "\n".join(lines[start : end + 1])
            if not section.strip():
                continue

            if estimate_tokens(section.strip()) > self.max_size:
                spans.extend(self._split_by_paragraphs(lines[start : end + 1], start, breadcrumb))
            else:
                spans.append(_Span(section, list(breadcrumb), start, end))
        return spans

    def _chunk_fixed(self, lines: List[str]) -> List[_Span]:
        spans: List[_Span] = []
        window: List[str] = []
        costs: List[int] = []
        start = 0

        for number, line in enumerate(lines):
            cost = estimate_tokens(line)
            if window and sum(costs) + cost > self.max_size:
                spans.append(_Span("\n".join(window), [], start, number - 1))
                keep = self._overlap_length(costs)
                window = window[len(window) - keep :] if keep else []
                costs = costs[len(costs) - keep :] if keep else []
                start = number - keep
            window.append(line)
            costs.append(cost)

        if window:
            spans.append(_Span("\n".join(window), [], start, len(lines) - 1))
        return spans

    def _overlap_length(self, costs: Sequence[int]) -> int:
        """Number of trailing lines whose estimated tokens fit inside ``overlap``."""
        total = 0
        keep = 0
        # never carry the whole window, the next one has to advance
        for cost in reversed(costs[1:]):
            if total + cost > self.overlap:
                break
            total += cost
            keep += 1
        return keep

    def _split_if_oversized(self, span: _Span) -> List[_Span]:
        if estimate_tokens(span.text.strip()) <= self.max_size:
            return [span]
        return self._split_by_paragraphs(span.text.split("\n"), span.start_line, span.headings)

    def _split_by_paragraphs(
        self, lines: Sequence[str], first_line: int, breadcrumb: Sequence[str]
    ) -> List[_Span]:
        spans: List[_Span] = []
        parts: List[str] = []
        start = end = first_line

        for paragraph, para_start, para_end in iter_paragraphs(lines, first_line):
            candidate = "\n\n".join(parts + [paragraph])
            if parts and estimate_tokens(candidate) > self.max_size:
                spans.append(_Span("\n\n".join(parts), list(breadcrumb), start, end))
                parts = []
            if not parts:
                start = para_start
            parts.append(paragraph)
            end = para_end

        if parts:
            spans.append(_Span("\n\n".join(parts), list(breadcrumb), start, end))
        return spans

    @staticmethod
    def _number(spans: Iterable[_Span]) -> List[Chunk]:
        chunks: List[Chunk] = []
        for span in spans:
            text = span.text.strip()
            if not text:
                continue
            chunks.append(
                Chunk(
                    index=len(chunks),
                    text=text,
                    headings=list(span.headings),
                    start_line=span.start_line,
                    end_line=span.end_line,
                )
            )
        LOGGER.debug("Produced %d chunks", len(chunks))
        return chunks
