"""SMUVES — HubSpot CMS API Client.

Handles bearer authentication, retry logic, rate limiting, and pagination
for the CMS v3 page collections.
"""

import asyncio
from typing import Any, Dict, List, Optional

import httpx

from smuves.config import settings
from smuves.core.fields import PAGE_TYPE_PATHS, WRITABLE_PAGE_TYPES
from smuves.core.logging import get_logger

logger = get_logger("hubspot.client")

RETRY_BASE_DELAY = 2  # seconds
PAGE_LIMIT = 100


class HubSpotAPIError(Exception):
    """Raised when HubSpot returns an error or cannot be reached."""

    def __init__(self, message: str, status_code: int = 0):
        self.status_code = status_code
        super().__init__(message)


class HubSpotClient:
    """Async HTTP client for the HubSpot CMS API."""

    def __init__(
        self,
        access_token: str,
        base_url: str | None = None,
        max_retries: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.access_token = access_token
        self.base_url = (base_url or settings.hubspot_base_url).rstrip("/")
        self.max_retries = max_retries or settings.hubspot_max_retries
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=settings.http_timeout_seconds,
                transport=self._transport,
                headers={
                    "Authorization": f"Bearer {self.access_token}",
                    "Content-Type": "application/json",
                },
            )
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def __aenter__(self) -> "HubSpotClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    # ── Core Request Method ──

    async def _send(
        self,
        method: str,
        path: str,
        params: Dict[str, Any] | None = None,
        json: Dict[str, Any] | None = None,
    ) -> httpx.Response:
        """Make a request with retry + rate-limit handling."""
        client = await self._get_client()

        for attempt in range(1, self.max_retries + 1):
            try:
                resp = await client.request(method, path, params=params, json=json)

                # Rate limited
                if resp.status_code == 429 and attempt < self.max_retries:
                    wait = RETRY_BASE_DELAY * (2 ** (attempt - 1))
                    logger.warning(
                        f"Rate limited (429). Retrying in {wait}s (attempt {attempt}/{self.max_retries})"
                    )
                    await asyncio.sleep(wait)
                    continue

                resp.raise_for_status()
                return resp

            except httpx.HTTPStatusError as e:
                error_msg = _error_message(e.response)

                if attempt < self.max_retries and e.response.status_code >= 500:
                    wait = RETRY_BASE_DELAY * (2 ** (attempt - 1))
                    logger.warning(
                        f"Server error {e.response.status_code}. Retrying in {wait}s"
                    )
                    await asyncio.sleep(wait)
                    continue

                raise HubSpotAPIError(error_msg, e.response.status_code) from e

            except httpx.InvalidURL as e:
                raise HubSpotAPIError(f"Invalid request URL: {e}") from e

            except httpx.RequestError as e:
                if attempt < self.max_retries:
                    wait = RETRY_BASE_DELAY * (2 ** (attempt - 1))
                    logger.warning(f"Request error: {e}. Retrying in {wait}s")
                    await asyncio.sleep(wait)
                    continue
                raise HubSpotAPIError(
                    f"Connection failed after {self.max_retries} attempts: {e}"
                ) from e

        raise HubSpotAPIError("Max retries exhausted")

    async def _request(
        self,
        method: str,
        path: str,
        params: Dict[str, Any] | None = None,
        json: Dict[str, Any] | None = None,
    ) -> Dict[str, Any]:
        resp = await self._send(method, path, params=params, json=json)
        if not resp.content:
            return {}
        try:
            return resp.json()
        except ValueError as e:
            raise HubSpotAPIError(
                f"Unreadable response from HubSpot (HTTP {resp.status_code})", resp.status_code
            ) from e

    # ── Pagination ──

    async def _paginated_get(
        self,
        path: str,
        params: Dict[str, Any] | None = None,
        max_pages: int = 100,
    ) -> List[Dict[str, Any]]:
        """Follow ``paging.next.after`` cursors until exhausted."""
        all_results: List[Dict[str, Any]] = []
        params = dict(params or {})
        params.setdefault("limit", PAGE_LIMIT)

        for _ in range(max_pages):
            result = await self._request("GET", path, params=params)
            all_results.extend(result.get("results", []))

            after = ((result.get("paging") or {}).get("next") or {}).get("after")
            if not after:
                break
            params["after"] = after

        logger.info(f"Fetched {len(all_results)} records from {path}")
        return all_results

    # ── Page Reads ──

    async def list_pages(self, page_type: str) -> List[Dict[str, Any]]:
        """Fetch every page of one type, tagged with ``pageType``."""
        items = await self._paginated_get(PAGE_TYPE_PATHS[page_type])
        return [{**item, "pageType": page_type} for item in items]

    async def fetch_all_pages(self) -> List[Dict[str, Any]]:
        """Fetch site pages, landing pages and blog posts.

        A collection the token has no scope for is skipped with a warning.
        """
        pages: List[Dict[str, Any]] = []
        for page_type in PAGE_TYPE_PATHS:
            try:
                found = await self.list_pages(page_type)
            except HubSpotAPIError as e:
                logger.warning(f"❌ Failed to fetch {page_type}s: {e}")
                continue
            if found:
                logger.info(f"✅ Found {len(found)} {page_type}s")
            pages.extend(found)
        return pages

    # ── Page Writes ──

    def page_path(self, page_type: str, page_id: str) -> str:
        if page_type not in WRITABLE_PAGE_TYPES:
            raise HubSpotAPIError(
                f"Syncing for page type '{page_type}' is not supported yet."
            )
        return f"{PAGE_TYPE_PATHS[page_type]}/{page_id}"

    async def update_page(
        self, page_type: str, page_id: str, payload: Dict[str, Any]
    ) -> Dict[str, Any]:
        """PATCH the given properties onto a page."""
        return await self._request(
            "PATCH", self.page_path(page_type, page_id), json=payload
        )

    async def publish_page(self, page_type: str, page_id: str) -> None:
        """Schedule an immediate publish. HubSpot answers 204 on success."""
        resp = await self._send(
            "POST",
            f"{self.page_path(page_type, page_id)}/publish-action",
            json={"action": "schedule-publish"},
        )
        if resp.status_code != 204:
            raise HubSpotAPIError(
                _error_message(resp), resp.status_code
            )


def _error_message(response: httpx.Response) -> str:
    """Pull HubSpot's ``message`` out of an error body, if it sent JSON."""
    if response.headers.get("content-type", "").startswith("application/json"):
        try:
            body = response.json()
        except ValueError:
            body = {}
        if isinstance(body, dict) and body.get("message"):
            return body["message"]
    return f"HTTP Error {response.status_code}"
