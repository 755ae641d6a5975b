"""Keyword search through the Omnisearch plugin's local HTTP server."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from vaultfinder.models import SearchOptions, SearchResult
from vaultfinder.utils.text import extract_keywords

LOGGER = logging.getLogger(__name__)

DEFAULT_TOP_K = 5


class OmnisearchBackend:
    """Adapter for ``GET /search?q=`` on a running Omnisearch HTTP server.

    Omnisearch ranks with BM25, so scores are not bounded to [0, 1] and the
    similarity threshold is not applied to them.
    """

    name = "omnisearch"

    def __init__(
        self,
        url: str,
        *,
        client: Optional[httpx.Client] = None,
        probe_timeout: float = 3.0,
        request_timeout: float = 10.0,
    ) -> None:
        self.url = url.rstrip("/")
        self.probe_timeout = probe_timeout
        self.request_timeout = request_timeout
        self._client = client or httpx.Client()

    def is_available(self) -> bool:
        try:
            response = self._client.get(
                f"{self.url}/search", params={"q": ""}, timeout=self.probe_timeout
            )
        except httpx.HTTPError as exc:
            LOGGER.debug("Omnisearch not reachable at %s: %s", self.url, exc)
            return False
        return response.status_code == 200

    def search(self, query: str, options: Optional[SearchOptions] = None) -> List[SearchResult]:
        options = options or SearchOptions()
        response = self._client.get(
            f"{self.url}/search", params={"q": query}, timeout=self.request_timeout
        )
        response.raise_for_status()
        payload = response.json()
        if not isinstance(payload, list):
            LOGGER.warning("Unexpected Omnisearch response type: %s", type(payload).__name__)
            return []

        results = [self._to_result(item) for item in payload if isinstance(item, dict) and item.get("path")]
        if options.folder:
            results = [result for result in results if result.document_id.startswith(options.folder)]
        return results[: DEFAULT_TOP_K if options.top_k is None else options.top_k]

    def find_related(self, content: str, top_k: int = DEFAULT_TOP_K) -> List[SearchResult]:
        keywords = extract_keywords(content)
        if not keywords:
            return []
        return self.search(keywords, SearchOptions(top_k=top_k))

    @staticmethod
    def _to_result(item: Dict[str, Any]) -> SearchResult:
        return SearchResult(
            document_id=str(item["path"]),
            content=_content_of(item),
            score=float(item.get("score") or 0.0),
        )

    def close(self) -> None:
        self._client.close()


def _content_of(item: Dict[str, Any]) -> str:
    if item.get("excerpt"):
        return str(item["excerpt"])
    matches = [match.get("match", "") for match in item.get("matches") or [] if isinstance(match, dict)]
    if any(matches):
        return " ... ".join(match for match in matches if match)
    return f"[{item.get('basename') or item['path']}]"
