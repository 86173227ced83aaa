"""HTTP helpers shared by outbound integrations (facts API, email, webhooks)."""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Awaitable, Callable
from urllib.parse import urlsplit

import httpx

logger = logging.getLogger(__name__)

DEFAULT_RETRY_STATUSES = {429, 500, 502, 503, 504}


def safe_url(url: str | None) -> str:
    """Strip query string and credentials before logging a URL."""
    if not url:
        return ""
    parts = urlsplit(url)
    host = parts.hostname or ""
    if parts.port:
        host = f"{host}:{parts.port}"
    return f"{parts.scheme}://{host}{parts.path}"


def _backoff_delay(attempt: int, base_delay: float, max_delay: float) -> float:
    delay = min(max_delay, base_delay * (2**attempt))
    if delay:
        delay += random.uniform(0, delay / 2)
    return delay


async def request_with_retries(
    request_fn: Callable[[], Awaitable[httpx.Response]],
    *,
    max_attempts: int = 3,
    base_delay: float = 0.5,
    max_delay: float = 4.0,
    retry_statuses: set[int] | None = None,
) -> httpx.Response:
    """
    Execute an HTTP request, retrying transport errors and retryable statuses.

    The last response is returned as-is once attempts run out; the caller
    decides whether a non-2xx status is an error.
    """
    statuses = retry_statuses or DEFAULT_RETRY_STATUSES
    response: httpx.Response | None = None

    for attempt in range(max_attempts):
        last_attempt = attempt >= max_attempts - 1
        try:
            response = await request_fn()
        except httpx.RequestError as exc:
            if last_attempt:
                raise
            logger.warning("HTTP request failed (%s), retrying", type(exc).__name__)
            await asyncio.sleep(_backoff_delay(attempt, base_delay, max_delay))
            continue

        if response.status_code in statuses and not last_attempt:
            logger.warning("HTTP request returned %s, retrying", response.status_code)
            await asyncio.sleep(_backoff_delay(attempt, base_delay, max_delay))
            continue

        return response

    return response
