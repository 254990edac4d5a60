"""
Async Azure Resource Manager client with pagination, throttling, retry, and safety enforcement.
Covers the two read surfaces the inventory needs: nextLink-paged REST listings
and Resource Graph queries paged by $skipToken.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncGenerator, Optional

import httpx

from ..config import (
    ARM_BASE_URL,
    RESOURCE_GRAPH_API_VERSION,
    RESOURCE_GRAPH_PATH,
    MAX_RETRIES,
    INITIAL_BACKOFF_SECONDS,
    MAX_BACKOFF_SECONDS,
    BACKOFF_MULTIPLIER,
    MAX_PAGE_SIZE,
    MAX_PAGES_PER_ENDPOINT,
    MAX_CONCURRENT_REQUESTS,
)
from ..safety.guardian import SafetyGuardian, SafetyViolation

logger = logging.getLogger("azure_inventory.arm")

RETRYABLE_STATUSES = (429, 500, 502, 503, 504)
PERMISSION_STATUSES = (401, 403, 404)


class ArmAPIError(Exception):
    """Raised when ARM returns a non-recoverable error."""
    def __init__(self, status_code: int, message: str, url: str):
        self.status_code = status_code
        self.url = url
        self.message = message
        super().__init__(f"ARM API Error {status_code} for {url}: {message}")

    @property
    def is_permission_error(self) -> bool:
        return self.status_code in PERMISSION_STATUSES


class ArmClient:
    """
    Async Azure Resource Manager client.
    Features:
      - Safety-validated requests (read-only enforcement)
      - Automatic pagination with nextLink
      - Resource Graph queries with $top / $skipToken
      - Exponential backoff on 429/5xx and timeouts
      - Concurrent request semaphore
    """

    def __init__(
        self,
        access_token: str,
        guardian: SafetyGuardian,
        base_url: str = ARM_BASE_URL,
        max_retries: int = MAX_RETRIES,
        initial_backoff: float = INITIAL_BACKOFF_SECONDS,
    ):
        self.access_token = access_token
        self.guardian = guardian
        self.base_url = base_url.rstrip("/")
        self.max_retries = max_retries
        self.initial_backoff = initial_backoff
        self._semaphore = asyncio.Semaphore(MAX_CONCURRENT_REQUESTS)
        self._request_count = 0
        self._throttle_count = 0
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(60.0, connect=30.0),
            limits=httpx.Limits(
                max_connections=MAX_CONCURRENT_REQUESTS * 2,
                max_keepalive_connections=MAX_CONCURRENT_REQUESTS,
            ),
            headers={
                "Authorization": f"Bearer {self.access_token}",
                "Content-Type": "application/json",
                "Accept": "application/json",
            },
        )
        return self

    async def __aexit__(self, *args):
        if self._client:
            await self._client.aclose()
            self._client = None

    def _build_url(self, endpoint: str) -> str:
        """Build full ARM URL from relative endpoint."""
        if endpoint.startswith("http"):
            return endpoint
        return f"{self.base_url}/{endpoint.lstrip('/')}"

    async def get_all_pages_stream(
        self,
        endpoint: str,
        params: Optional[dict] = None,
    ) -> AsyncGenerator[dict, None]:
        """
        Stream every item of a nextLink-paginated ARM listing.
        The nextLink already carries api-version and continuation parameters.
        """
        url: Optional[str] = self._build_url(endpoint)
        pages = 0

        while url and pages < MAX_PAGES_PER_ENDPOINT:
            self.guardian.validate_request("GET", url)

            async with self._semaphore:
                data = await self._execute_with_retry("GET", url, params=params)

            for item in data.get("value", []):
                yield item

            url = data.get("nextLink")
            params = None
            pages += 1

        if pages >= MAX_PAGES_PER_ENDPOINT:
            logger.warning(
                f"Pagination safety cap reached ({MAX_PAGES_PER_ENDPOINT} pages) "
                f"for endpoint: {endpoint}"
            )

    async def query_resources(
        self,
        subscriptions: list[str],
        query: str,
        top: int = MAX_PAGE_SIZE,
        skip_token: Optional[str] = None,
    ) -> dict:
        """
        Run one page of a Resource Graph query against an explicit subscription set.

        Returns the raw response: {"totalRecords", "count", "data", "$skipToken"?}.
        """
        url = self._build_url(RESOURCE_GRAPH_PATH)
        self.guardian.validate_request("POST", url)

        options: dict[str, Any] = {
            "$top": min(top, MAX_PAGE_SIZE),
            "resultFormat": "objectArray",
        }
        if skip_token:
            options["$skipToken"] = skip_token
        body = {
            "subscriptions": list(subscriptions),
            "query": query,
            "options": options,
        }

        async with self._semaphore:
            return await self._execute_with_retry(
                "POST",
                url,
                params={"api-version": RESOURCE_GRAPH_API_VERSION},
                json_body=body,
            )

    async def _execute_with_retry(
        self,
        method: str,
        url: str,
        params: Optional[dict] = None,
        json_body: Optional[dict] = None,
    ) -> dict:
        """Execute request with exponential backoff on throttling."""
        backoff = self.initial_backoff
        last_status = 0

        for attempt in range(self.max_retries + 1):
            try:
                response = await self._execute_raw(
                    method, url, params=params, json_body=json_body
                )
                self._request_count += 1

                if response.status_code == 200:
                    if not response.content or not response.content.strip():
                        return {"value": []}
                    return response.json()

                if response.status_code in RETRYABLE_STATUSES:
                    last_status = response.status_code
                    if attempt == self.max_retries:
                        break
                    self._throttle_count += 1
                    wait_time = max(_retry_after(response, backoff), backoff)
                    logger.warning(
                        f"Throttled ({response.status_code}) on {url}. "
                        f"Retry {attempt + 1}/{self.max_retries} in {wait_time:.1f}s"
                    )
                    await asyncio.sleep(wait_time)
                    backoff = min(backoff * BACKOFF_MULTIPLIER, MAX_BACKOFF_SECONDS)
                    continue

                raise ArmAPIError(response.status_code, _error_message(response), url)

            except httpx.TimeoutException:
                logger.warning(f"Timeout on {url}, attempt {attempt + 1}/{self.max_retries}")
                if attempt == self.max_retries:
                    raise
                await asyncio.sleep(backoff)
                backoff = min(backoff * BACKOFF_MULTIPLIER, MAX_BACKOFF_SECONDS)

            except httpx.ConnectError as e:
                logger.warning(f"Connection error on {url}: {e}")
                if attempt == self.max_retries:
                    raise
                await asyncio.sleep(backoff)
                backoff = min(backoff * BACKOFF_MULTIPLIER, MAX_BACKOFF_SECONDS)

        raise ArmAPIError(last_status, "Maximum retries exceeded", url)

    async def _execute_raw(
        self,
        method: str,
        url: str,
        params: Optional[dict] = None,
        json_body: Optional[dict] = None,
    ) -> httpx.Response:
        """Execute raw HTTP request."""
        if not self._client:
            raise RuntimeError("ArmClient not initialized. Use 'async with' context.")

        if method == "GET":
            return await self._client.get(url, params=params)
        elif method == "POST":
            return await self._client.post(url, json=json_body, params=params)
        else:
            raise SafetyViolation(f"Unsupported method at raw level: {method}")

    def get_stats(self) -> dict:
        """Return client statistics."""
        return {
            "total_requests": self._request_count,
            "throttle_events": self._throttle_count,
        }


def _retry_after(response: httpx.Response, default: float) -> float:
    try:
        return float(response.headers.get("Retry-After", default))
    except ValueError:
        return default


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json() if response.content else {}
    except ValueError:
        return response.text[:200]
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        return error.get("message", response.text[:200])
    return response.text[:200]
