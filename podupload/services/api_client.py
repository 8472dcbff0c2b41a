"""HTTP adapter shared by the transport backends and the duration probe."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

import httpx

from ..exceptions import NetworkError, ServerError

logger = logging.getLogger(__name__)


class HTTPAPIClient:
    """
    HTTP client adapter for backend calls.

    Implements IAPIClient protocol. Idempotent calls retry on 5xx and
    connection errors; pass retries=0 for calls that must not be repeated.
    """

    def __init__(
        self,
        base_url: str = "",
        timeout: float = 60,
        max_retries: int = 3,
        retry_backoff: float = 0.5,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._base_url = base_url
        self._timeout = timeout
        self._max_retries = max_retries
        self._retry_backoff = retry_backoff
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            transport=self._transport,
            follow_redirects=True,
        )
        return self

    async def __aexit__(self, *args):
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        if not self._client:
            raise RuntimeError("HTTPAPIClient not initialized. Use 'async with' context.")
        return self._client

    async def request(
        self,
        method: str,
        url: str,
        retries: Optional[int] = None,
        **kwargs,
    ) -> httpx.Response:
        client = self.client
        attempts = (self._max_retries if retries is None else retries) + 1

        for attempt in range(attempts):
            last_attempt = attempt == attempts - 1
            try:
                response = await client.request(method, url, **kwargs)
            except httpx.HTTPError as exc:
                if not last_attempt:
                    logger.debug(f"[http] {method} {url} failed ({exc}), retrying")
                    await asyncio.sleep(self._retry_backoff * (attempt + 1))
                    continue
                raise NetworkError(f"{method} {url} failed: {exc}") from exc

            if response.status_code >= 500 and not last_attempt:
                logger.debug(f"[http] {method} {url} returned {response.status_code}, retrying")
                await asyncio.sleep(self._retry_backoff * (attempt + 1))
                continue

            if response.status_code >= 400:
                try:
                    error_detail = response.json()
                except ValueError:
                    error_detail = response.text
                raise ServerError(
                    f"API error {response.status_code} on {method} {url}: {error_detail}",
                    status_code=response.status_code,
                )

            return response

        raise NetworkError(f"Failed to {method} {url} after {attempts} attempts")

    async def post_json(self, url: str, json: Dict, retries: Optional[int] = None, **kwargs) -> Any:
        response = await self.request("POST", url, retries=retries, json=json, **kwargs)
        return _decode_json(response)

    async def get_json(self, url: str, retries: Optional[int] = None, **kwargs) -> Any:
        response = await self.request("GET", url, retries=retries, **kwargs)
        return _decode_json(response)

    def stream(self, method: str, url: str, **kwargs):
        """Streaming request context manager (no retries, no error mapping)."""
        return self.client.stream(method, url, **kwargs)


def _decode_json(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError as exc:
        raise ServerError(
            f"Invalid JSON from {response.request.method} {response.request.url}",
            status_code=response.status_code,
        ) from exc
