from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol

import httpx

from orelens.clients.http import HttpConfig, TransientHttpError, get_response, status_code_of
from orelens.clients.ratelimit import RateLimiter
from orelens.utils import sha256_bytes, utc_now

logger = logging.getLogger(__name__)


class DocumentFetchError(RuntimeError):
    def __init__(self, url: str, message: str, *, status_code: int | None = None) -> None:
        super().__init__(f"{url}: {message}")
        self.url = url
        self.status_code = status_code


@dataclass(frozen=True)
class RawDocument:
    url: str
    content: bytes
    content_type: str = ""
    fetched_at: datetime = field(default_factory=utc_now)

    @property
    def is_pdf(self) -> bool:
        return self.content[:5] == b"%PDF-" or "application/pdf" in self.content_type.lower()

    @property
    def sha256(self) -> str:
        return sha256_bytes(self.content)


class DocumentFetcher(Protocol):
    async def fetch(self, url: str) -> RawDocument: ...


@dataclass
class HttpDocumentFetcher:
    """Plain GET of filing documents, through the same limiter as the filing client."""

    http: httpx.AsyncClient
    limiter: RateLimiter
    cfg: HttpConfig = field(default_factory=HttpConfig)

    async def aclose(self) -> None:
        await self.http.aclose()

    async def fetch(self, url: str) -> RawDocument:
        try:
            r = await get_response(self.http, url, limiter=self.limiter, cfg=self.cfg)
        except (httpx.HTTPError, TransientHttpError) as e:
            raise DocumentFetchError(url, str(e) or type(e).__name__, status_code=status_code_of(e)) from e
        doc = RawDocument(url=url, content=r.content, content_type=r.headers.get("content-type", ""))
        logger.debug("Fetched %s (%s bytes, %s)", url, len(doc.content), doc.content_type or "unknown type")
        return doc
