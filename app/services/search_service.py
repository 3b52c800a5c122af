"""
Search Service
Thin client for an external web search endpoint used to augment chat answers.
"""

import logging
from typing import Any, Optional

import httpx

from app.core.config import settings

logger = logging.getLogger(__name__)


class SearchError(Exception):
    """Raised when the search endpoint cannot be reached or rejects the query"""


class SearchService:
    """
    Web search client.

    The response shape of the endpoint is not guaranteed; search() returns
    the decoded JSON payload (or raw text) untouched and leaves
    normalization to app.services.search_results.
    """

    def __init__(
        self,
        api_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Initialize search service.

        Args:
            api_url: Search endpoint URL (defaults to SEARCH_API_URL from settings)
            api_key: Search API key (defaults to SEARCH_API_KEY from settings)
            timeout: Request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.api_url = api_url or settings.SEARCH_API_URL
        self.api_key = api_key or settings.SEARCH_API_KEY
        self.timeout = timeout or settings.SEARCH_TIMEOUT
        self._transport = transport

    def is_configured(self) -> bool:
        """Check if search service is properly configured"""
        return bool(self.api_url)

    async def search(self, query: str, limit: int = 3) -> Any:
        """
        Run a web search.

        Args:
            query: Search query
            limit: Maximum number of results requested

        Returns:
            Decoded JSON payload, or the raw response text if it is not JSON

        Raises:
            SearchError: If the service is unconfigured or the request fails
        """
        if not self.is_configured():
            raise SearchError("Search service not configured (missing SEARCH_API_URL)")

        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        payload = {"query": query, "max_results": limit}

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.api_url, json=payload, headers=headers)
                response.raise_for_status()
        except httpx.HTTPError as e:
            raise SearchError(f"Search request failed: {e}") from e

        logger.info(f"Search returned HTTP {response.status_code} for query of {len(query)} chars")
        try:
            return response.json()
        except ValueError:
            return response.text
