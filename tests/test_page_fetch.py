from __future__ import annotations

import httpx
import pytest

from laiive.services.page_fetch import PageFetchError, PageFetcher, html_to_text
from laiive.url_guard import UrlRejected

PAGE = """
<html>
  <head><title>Jazz Night</title><style>body { color: red; }</style></head>
  <body>
    <script>var tracking = true;</script>
    <h1>Jazz   Night</h1>
    <p>Blue Note,
       Milan</p>
  </body>
</html>
"""


def test_html_to_text_strips_markup_and_scripts():
    text = html_to_text(PAGE)

    assert text == "Jazz Night Jazz Night Blue Note, Milan"
    assert "tracking" not in text
    assert "color" not in text


def test_html_to_text_truncates():
    assert html_to_text(PAGE, limit=4) == "Jazz"


def make_fetcher(handler) -> PageFetcher:
    return PageFetcher(http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


@pytest.mark.asyncio
async def test_fetch_text_follows_public_redirects():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/old":
            return httpx.Response(301, headers={"location": "/new"})
        return httpx.Response(200, text=PAGE, headers={"content-type": "text/html"})

    text = await make_fetcher(handler).fetch_text("https://events.example.com/old", limit=8000)

    assert "Blue Note, Milan" in text


@pytest.mark.asyncio
async def test_redirects_to_internal_hosts_are_rejected():
    calls: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(str(request.url))
        return httpx.Response(302, headers={"location": "http://169.254.169.254/latest"})

    with pytest.raises(UrlRejected):
        await make_fetcher(handler).fetch_text("https://events.example.com/", limit=100)

    assert calls == ["https://events.example.com/"]


@pytest.mark.asyncio
async def test_http_errors_raise_fetch_error():
    fetcher = make_fetcher(lambda request: httpx.Response(404, text="missing"))

    with pytest.raises(PageFetchError):
        await fetcher.fetch_text("https://events.example.com/gone", limit=100)


@pytest.mark.asyncio
async def test_redirect_loops_are_cut_off():
    fetcher = make_fetcher(
        lambda request: httpx.Response(302, headers={"location": "https://events.example.com/loop"})
    )

    with pytest.raises(PageFetchError):
        await fetcher.fetch_text("https://events.example.com/loop", limit=100)
