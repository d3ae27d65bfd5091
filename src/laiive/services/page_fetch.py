"""Fetch public web pages and reduce them to plain text."""

from __future__ import annotations

import logging
import re

import httpx
from bs4 import BeautifulSoup

from ..url_guard import validate_public_url

logger = logging.getLogger(__name__)

_BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
}
_MAX_REDIRECTS = 5
_WHITESPACE_RE = re.compile(r"\s+")


class PageFetchError(Exception):
    pass


def html_to_text(html: str, *, limit: int | None = None) -> str:
    """Strip markup, scripts and styles and collapse whitespace."""

    soup = BeautifulSoup(html, "lxml")
    for tag in soup.find_all(["script", "style", "noscript", "template"]):
        tag.decompose()
    text = _WHITESPACE_RE.sub(" ", soup.get_text(" ")).strip()
    if limit is not None:
        text = text[:limit]
    return text


class PageFetcher:
    """Download a page, re-checking every redirect target against the URL guard."""

    def __init__(
        self,
        *,
        timeout: float = 15.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._timeout = timeout
        self._http_client = http_client

    async def _get(self, client: httpx.AsyncClient, url: str) -> httpx.Response:
        current = url
        for _ in range(_MAX_REDIRECTS + 1):
            validate_public_url(current)
            response = await client.get(current, headers=_BROWSER_HEADERS, follow_redirects=False)
            if not response.is_redirect:
                return response
            location = response.headers.get("location")
            if not location:
                return response
            current = str(response.url.join(location))
            logger.debug("Following redirect to %s", current)
        raise PageFetchError("Too many redirects")

    async def fetch_text(self, url: str, *, limit: int) -> str:
        try:
            if self._http_client is not None:
                response = await self._get(self._http_client, url)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await self._get(client, url)
        except httpx.HTTPError as exc:
            logger.warning("Failed to fetch %s: %s", url, exc)
            raise PageFetchError("Could not fetch the webpage") from exc

        if response.status_code >= 400:
            logger.warning("Failed to fetch %s: HTTP %s", url, response.status_code)
            raise PageFetchError("Could not fetch the webpage")

        text = html_to_text(response.text, limit=limit)
        logger.info("Extracted %d characters of text from %s", len(text), url)
        return text


__all__ = ["PageFetchError", "PageFetcher", "html_to_text"]
