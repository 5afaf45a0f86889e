from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from orelens.clients.ratelimit import RateLimiter


class TransientHttpError(RuntimeError):
    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class HttpConfig:
    timeout_s: float = 30.0
    user_agent: str = "OreLens/0.1"
    max_attempts: int = 3
    backoff_initial_s: float = 0.5
    backoff_max_s: float = 10.0
    backoff_jitter_s: float = 1.0


def _is_retryable_status(code: int) -> bool:
    return code in {408, 409, 425, 429, 500, 502, 503, 504}


async def get_response(
    client: httpx.AsyncClient,
    url: str,
    *,
    limiter: RateLimiter,
    cfg: HttpConfig,
    params: Mapping[str, Any] | None = None,
) -> httpx.Response:
    """GET with retries; every attempt goes through the shared limiter.

    Raises the last error once attempts are exhausted: ``httpx.RequestError`` or
    ``TransientHttpError`` for retryable failures, ``httpx.HTTPStatusError`` for
    other 4xx/5xx answers (those are not retried).
    """
    retrying = AsyncRetrying(
        retry=retry_if_exception_type((httpx.RequestError, TransientHttpError)),
        wait=wait_exponential_jitter(
            initial=cfg.backoff_initial_s, max=cfg.backoff_max_s, jitter=cfg.backoff_jitter_s
        ),
        stop=stop_after_attempt(cfg.max_attempts),
        reraise=True,
    )
    async for attempt in retrying:
        with attempt:
            await limiter.wait()
            r = await client.get(url, params=params)
            if _is_retryable_status(r.status_code):
                raise TransientHttpError(
                    f"Retryable HTTP status {r.status_code} for {url}", status_code=r.status_code
                )
            r.raise_for_status()
            return r
    raise AssertionError("unreachable")


async def get_json(
    client: httpx.AsyncClient,
    url: str,
    *,
    limiter: RateLimiter,
    cfg: HttpConfig,
    params: Mapping[str, Any] | None = None,
) -> dict[str, Any] | list[Any]:
    r = await get_response(client, url, limiter=limiter, cfg=cfg, params=params)
    return r.json()


def status_code_of(exc: BaseException) -> int | None:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code
    if isinstance(exc, TransientHttpError):
        return exc.status_code
    return None


def build_async_client(cfg: HttpConfig, *, transport: httpx.AsyncBaseTransport | None = None) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=httpx.Timeout(cfg.timeout_s),
        headers={"User-Agent": cfg.user_agent, "Accept-Encoding": "gzip, deflate"},
        follow_redirects=True,
        transport=transport,
    )
