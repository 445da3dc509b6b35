"""
Async REST client with pagination, throttling retry, and read-only enforcement.
Shared by the Graph, Exchange admin, Teams admin and SharePoint admin collectors.
Result sets are streamed one record at a time so tenant size does not matter.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncGenerator, Optional

import httpx

from ..config import (
    BACKOFF_MULTIPLIER,
    CONNECT_TIMEOUT_SECONDS,
    INITIAL_BACKOFF_SECONDS,
    MAX_BACKOFF_SECONDS,
    MAX_PAGES_PER_QUERY,
    MAX_RETRIES,
    REQUEST_TIMEOUT_SECONDS,
)
from ..errors import ApiError, RemoteFetchError
from ..safety.guardian import SafetyGuardian

logger = logging.getLogger("m365_export.remote")

NEXT_LINK_KEYS = ("@odata.nextLink", "odata.nextLink")
THROTTLE_STATUS_CODES = (429, 503, 504)


class ApiClient:
    """
    Async client for one service base URL.
    Features:
      - Safety-validated requests (read-only enforcement)
      - Pagination over @odata.nextLink / odata.nextLink
      - Exponential backoff on 429/503/504, honouring Retry-After
      - Streaming generators for large result sets
    Use as an async context manager; the connection is released on exit.
    """

    def __init__(
        self,
        base_url: str,
        access_token: str,
        guardian: SafetyGuardian,
        headers: Optional[dict] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        retry_sleep=asyncio.sleep,
    ):
        self.base_url = base_url.rstrip("/")
        self.access_token = access_token
        self.guardian = guardian
        self.extra_headers = headers or {}
        self._transport = transport
        self._sleep = retry_sleep
        self._request_count = 0
        self._throttle_count = 0
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(REQUEST_TIMEOUT_SECONDS, connect=CONNECT_TIMEOUT_SECONDS),
            headers={
                "Authorization": f"Bearer {self.access_token}",
                "Accept": "application/json",
                **self.extra_headers,
            },
            transport=self._transport,
        )
        return self

    async def __aexit__(self, *args):
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.debug(f"Disconnected from {self.base_url}")

    def build_url(self, endpoint: str) -> str:
        """Build full URL from a relative endpoint."""
        if endpoint.startswith("http"):
            return endpoint
        return f"{self.base_url}/{endpoint.lstrip('/')}"

    async def stream(
        self,
        endpoint: str,
        params: Optional[dict] = None,
        method: str = "GET",
        json_body: Optional[dict] = None,
    ) -> AsyncGenerator[dict, None]:
        """
        Stream every record of a paginated listing as an async generator.
        POST listings re-send the same body to each next link.
        """
        url = self.build_url(endpoint)
        pages = 0

        while url and pages < MAX_PAGES_PER_QUERY:
            self.guardian.validate_request(method, url, json_body)
            data = await self._execute_with_retry(method, url, params=params, json_body=json_body)

            for item in _page_items(data):
                yield item

            url = _next_link(data)
            params = None  # next link carries the query
            pages += 1

        if pages >= MAX_PAGES_PER_QUERY:
            logger.warning(
                f"Pagination safety cap reached ({MAX_PAGES_PER_QUERY} pages) for {endpoint}"
            )

    async def _execute_with_retry(
        self,
        method: str,
        url: str,
        params: Optional[dict] = None,
        json_body: Optional[dict] = None,
    ) -> Any:
        """Execute request with exponential backoff on throttling."""
        if not self._client:
            raise RuntimeError("ApiClient not initialized. Use 'async with' context.")

        backoff = INITIAL_BACKOFF_SECONDS
        for attempt in range(MAX_RETRIES + 1):
            try:
                response = await self._client.request(method, url, params=params, json=json_body)
            except httpx.TransportError as e:
                # TimeoutException is a TransportError
                kind = "Timeout" if isinstance(e, httpx.TimeoutException) else "Connection error"
                logger.warning(f"{kind} on {url}, attempt {attempt + 1}/{MAX_RETRIES + 1}: {e}")
                if attempt == MAX_RETRIES:
                    raise RemoteFetchError(f"{kind} requesting {url}: {e}") from e
                await self._sleep(backoff)
                backoff = min(backoff * BACKOFF_MULTIPLIER, MAX_BACKOFF_SECONDS)
                continue

            self._request_count += 1

            if response.status_code in (200, 201):
                if not response.content or not response.content.strip():
                    return {"value": []}
                try:
                    return response.json()
                except ValueError as e:
                    raise ApiError(response.status_code, "Response is not JSON", url) from e

            if response.status_code == 204:
                return {"value": []}

            if response.status_code in THROTTLE_STATUS_CODES and attempt < MAX_RETRIES:
                self._throttle_count += 1
                try:
                    retry_after = float(response.headers.get("Retry-After", backoff))
                except ValueError:
                    retry_after = backoff
                wait_time = max(retry_after, backoff)
                logger.warning(
                    f"Throttled ({response.status_code}) on {url}. "
                    f"Retry {attempt + 1}/{MAX_RETRIES} in {wait_time:.1f}s"
                )
                await self._sleep(wait_time)
                backoff = min(backoff * BACKOFF_MULTIPLIER, MAX_BACKOFF_SECONDS)
                continue

            raise ApiError(response.status_code, _error_message(response), url)

        raise RemoteFetchError(f"Retries exhausted for {url}")

    def get_stats(self) -> dict:
        """Return client statistics."""
        return {
            "total_requests": self._request_count,
            "throttle_events": self._throttle_count,
        }


def _page_items(data: Any) -> list:
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        if "value" in data:
            return data.get("value") or []
        # Some admin endpoints answer with a single object
        return [data] if data else []
    return []


def _next_link(data: Any) -> Optional[str]:
    if not isinstance(data, dict):
        return None
    for key in NEXT_LINK_KEYS:
        if data.get(key):
            return data[key]
    return None


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        message = error.get("message")
        # SharePoint nometadata errors nest the text one level deeper
        if isinstance(message, dict):
            return str(message.get("value", message))
        return str(message or error)
    if error:
        return str(error)
    return response.text[:200]
