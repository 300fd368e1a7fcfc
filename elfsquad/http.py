from __future__ import annotations

import asyncio
import logging

import httpx

from .constants import APP_VERSION, IDEMPOTENT_METHODS, LOGGER


def _seconds_from_retry_after(header: str | None) -> int | None:
    if header is None:
        return None
    try:
        return max(0, int(header))
    except ValueError:
        return None


class RetryTransport(httpx.AsyncBaseTransport):
    """Retries idempotent requests on 429 and 5xx responses.

    Token and revocation requests are POSTs and go through untouched: a
    replayed refresh grant would present an already-rotated refresh token.
    """

    def __init__(
        self,
        transport: httpx.AsyncBaseTransport,
        *,
        max_retries: int = 2,
        sleep=asyncio.sleep,
        logger: logging.Logger | None = None,
    ) -> None:
        self._transport = transport
        self._max_retries = max(0, max_retries)
        self._sleep = sleep
        self._logger = logger or LOGGER

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        if request.method.upper() not in IDEMPOTENT_METHODS:
            return await self._transport.handle_async_request(request)

        retries = 0
        while True:
            response = await self._transport.handle_async_request(request)

            if retries >= self._max_retries:
                return response

            if response.status_code == 429:
                wait_seconds = _seconds_from_retry_after(response.headers.get("retry-after"))
                if wait_seconds is None:
                    wait_seconds = 1
                self._logger.warning(
                    "Retrying 429 after %ss (%s %s)",
                    wait_seconds,
                    request.method,
                    request.url,
                )
                await response.aclose()
                await self._sleep(wait_seconds)
                retries += 1
                continue

            if 500 <= response.status_code < 600:
                backoff_seconds = 2**retries
                self._logger.warning(
                    "Retrying %s after %ss (%s %s)",
                    response.status_code,
                    backoff_seconds,
                    request.method,
                    request.url,
                )
                await response.aclose()
                await self._sleep(backoff_seconds)
                retries += 1
                continue

            return response

    async def aclose(self) -> None:
        await self._transport.aclose()


async def log_request(request: httpx.Request) -> None:
    LOGGER.debug("HTTP request %s %s", request.method, request.url)


async def log_response(response: httpx.Response) -> None:
    LOGGER.debug(
        "HTTP response %s %s -> %s",
        response.request.method,
        response.request.url,
        response.status_code,
    )
    if response.status_code >= 400:
        body = await response.aread()
        text = body.decode("utf-8", errors="replace")
        if len(text) > 1000:
            text = text[:1000] + "...<truncated>"
        LOGGER.warning(
            "HTTP %s from %s: %s",
            response.status_code,
            response.request.url,
            text,
        )


def build_http_client(
    *,
    base_url: str = "",
    timeout: float = 30.0,
    max_retries: int = 2,
    request_hooks: list | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    retry_transport = RetryTransport(
        transport or httpx.AsyncHTTPTransport(),
        max_retries=max_retries,
        logger=LOGGER,
    )
    return httpx.AsyncClient(
        base_url=base_url,
        timeout=timeout,
        headers={"User-Agent": f"elfsquad-authentication/{APP_VERSION}"},
        transport=retry_transport,
        event_hooks={
            "request": [*(request_hooks or []), log_request],
            "response": [log_response],
        },
    )
