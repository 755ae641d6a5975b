"""Capability interfaces shared by all search backends."""

from __future__ import annotations

from typing import List, Optional, Protocol, runtime_checkable

from vaultfinder.models import SearchOptions, SearchResult


@runtime_checkable
class SearchBackend(Protocol):
    name: str

    def is_available(self) -> bool:
        ...

    def search(self, query: str, options: Optional[SearchOptions] = None) -> List[SearchResult]:
        ...


@runtime_checkable
class SupportsFindRelated(Protocol):
    """Backends with a native "related notes" operation."""

    def find_related(self, content: str, top_k: int = 5) -> List[SearchResult]:
        ...
