from __future__ import annotations

import asyncio

import httpx
import pytest

from orelens.clients.http import HttpConfig
from orelens.clients.ratelimit import RateLimiter
from orelens.documents.fetch import DocumentFetchError, HttpDocumentFetcher

CFG = HttpConfig(backoff_initial_s=0, backoff_max_s=0, backoff_jitter_s=0)


def _fetcher(handler) -> HttpDocumentFetcher:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpDocumentFetcher(http=http, limiter=RateLimiter(0), cfg=CFG)


def test_fetch_returns_raw_document() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith(".pdf"):
            return httpx.Response(200, content=b"%PDF-1.7 ...", headers={"content-type": "application/octet-stream"})
        return httpx.Response(200, content=b"<p>NPV</p>", headers={"content-type": "text/html; charset=utf-8"})

    async def _run():
        fetcher = _fetcher(handler)
        try:
            return await fetcher.fetch("https://example.com/a.htm"), await fetcher.fetch("https://example.com/b.pdf")
        finally:
            await fetcher.aclose()

    html, pdf = asyncio.run(_run())
    assert html.content == b"<p>NPV</p>"
    assert html.content_type.startswith("text/html")
    assert not html.is_pdf
    assert pdf.is_pdf
    assert len(html.sha256) == 64


def test_fetch_failure_is_typed() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404)

    async def _run() -> None:
        fetcher = _fetcher(handler)
        try:
            await fetcher.fetch("https://example.com/missing.htm")
        finally:
            await fetcher.aclose()

    with pytest.raises(DocumentFetchError) as exc:
        asyncio.run(_run())
    assert exc.value.status_code == 404
    assert exc.value.url == "https://example.com/missing.htm"
