"""Adapter for the Smart Connections plugin API."""

from __future__ import annotations

import logging
from typing import Any, Callable, List, Optional

from vaultfinder.models import SearchOptions, SearchResult

LOGGER = logging.getLogger(__name__)

DEFAULT_TOP_K = 5
RELATED_CONTENT_CHARS = 500

ApiLookup = Callable[[], Optional[Any]]


def _field(item: Any, *names: str) -> Any:
    for name in names:
        value = item.get(name) if isinstance(item, dict) else getattr(item, name, None)
        if value:
            return value
    return None


class SmartConnectionsBackend:
    """Wraps a host-provided API object exposing ``search`` or ``score_connection``.

    ``api_lookup`` is called on every use, so the plugin may appear or
    disappear between calls; ``None`` means it is not loaded.
    """

    name = "smart-connections"

    def __init__(self, api_lookup: ApiLookup) -> None:
        self._api_lookup = api_lookup

    def is_available(self) -> bool:
        return self._api_lookup() is not None

    def search(self, query: str, options: Optional[SearchOptions] = None) -> List[SearchResult]:
        top_k = options.top_k if options and options.top_k is not None else DEFAULT_TOP_K
        api = self._api_lookup()
        if api is None:
            LOGGER.warning("Smart Connections API not available")
            return []

        if callable(getattr(api, "search", None)):
            raw = api.search(query, limit=top_k)
        elif callable(getattr(api, "score_connection", None)):
            raw = api.score_connection(query)
        else:
            LOGGER.warning("Smart Connections API exposes no search method")
            return []

        results = []
        for position, item in enumerate(list(raw or [])[:top_k]):
            score = _field(item, "score", "similarity")
            results.append(
                SearchResult(
                    document_id=str(_field(item, "path", "key") or "unknown"),
                    content=str(_field(item, "text", "content") or ""),
                    # unscored results keep their rank order
                    score=float(score) if score else 1 - position * 0.1,
                )
            )
        if options is not None and options.folder:
            results = [result for result in results if result.document_id.startswith(options.folder)]
        return results

    def find_related(self, content: str, top_k: int = DEFAULT_TOP_K) -> List[SearchResult]:
        return self.search(content[:RELATED_CONTENT_CHARS], SearchOptions(top_k=top_k))
