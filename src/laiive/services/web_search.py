"""Web search used by the internet search mode of the chat assistant."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

import httpx

logger = logging.getLogger(__name__)

_BRAVE_SEARCH_URL = "https://api.search.brave.com/res/v1/web/search"
_TIMEOUT_SECONDS = 30


@dataclass(frozen=True)
class SearchResult:
    title: str
    url: str
    description: str


class WebEventSearch(Protocol):
    async def search(self, query: str, count: int) -> list[SearchResult]:
        """Return search results. Raises on errors (caller handles formatting)."""
        ...


class BraveEventSearch:
    def __init__(
        self,
        api_key: str,
        *,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_key = api_key
        self._http_client = http_client

    async def search(self, query: str, count: int) -> list[SearchResult]:
        headers = {
            "X-Subscription-Token": self._api_key,
            "Accept": "application/json",
        }
        params = {"q": query, "count": count}

        if self._http_client is not None:
            response = await self._http_client.get(
                _BRAVE_SEARCH_URL, headers=headers, params=params
            )
        else:
            async with httpx.AsyncClient(timeout=_TIMEOUT_SECONDS) as client:
                response = await client.get(
                    _BRAVE_SEARCH_URL, headers=headers, params=params
                )

        if response.status_code >= 400:
            raise httpx.HTTPStatusError(
                f"HTTP {response.status_code} from Brave Search API",
                request=response.request,
                response=response,
            )

        data = response.json()
        raw_results = data.get("web", {}).get("results", [])
        logger.debug("Brave search returned %d results for %r", len(raw_results), query)

        return [
            SearchResult(
                title=r.get("title", "(no title)"),
                url=r.get("url", ""),
                description=r.get("description", ""),
            )
            for r in raw_results
        ]


__all__ = ["BraveEventSearch", "SearchResult", "WebEventSearch"]
