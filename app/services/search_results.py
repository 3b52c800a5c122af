"""
Search result normalization

Maps the heterogeneous payloads returned by search providers onto a single
list of SearchResultItem values.
"""

import json
import logging
from typing import Any, Dict, List, Optional

from app.core.config import settings
from app.schemas.contract_analysis import SearchResultItem

logger = logging.getLogger(__name__)

RESULT_LIST_FIELDS = (
    "results", "data", "items", "organic_results", "hits", "documents", "sources", "value",
)
TITLE_FIELDS = ("title", "name", "headline")
CONTENT_FIELDS = ("content", "snippet", "text", "description", "body", "summary")
URL_FIELDS = ("url", "link", "href", "source_url")


def _find_result_list(payload: Any) -> Optional[List[Any]]:
    if isinstance(payload, list):
        return payload

    if isinstance(payload, dict):
        for field in RESULT_LIST_FIELDS:
            if isinstance(payload.get(field), list):
                return payload[field]
        # Unknown provider: adopt the first array-valued field
        for value in payload.values():
            if isinstance(value, list):
                return value

    return None


def _first_present(item: Dict[str, Any], fields) -> Optional[str]:
    for field in fields:
        value = item.get(field)
        if value is not None and str(value).strip():
            return str(value).strip()
    return None


def _project(item: Any, content_limit: int) -> Optional[SearchResultItem]:
    if isinstance(item, str):
        content = item.strip()
        return SearchResultItem(content=content[:content_limit]) if content else None

    if not isinstance(item, dict):
        return None

    title = _first_present(item, TITLE_FIELDS) or ""
    content = _first_present(item, CONTENT_FIELDS) or ""
    url = _first_present(item, URL_FIELDS)
    if not (title or content):
        return None

    return SearchResultItem(title=title, content=content[:content_limit], url=url)


def extract_search_items(
    payload: Any,
    max_results: Optional[int] = None,
    content_limit: Optional[int] = None
) -> List[SearchResultItem]:
    """
    Project a search payload onto at most max_results normalized items.

    Accepts a bare array, an object exposing the array under a conventional
    field name, or any object with an array-valued field. JSON strings are
    decoded first.

    Args:
        payload: Raw search response
        max_results: Number of items kept (defaults to SEARCH_MAX_RESULTS)
        content_limit: Maximum content characters per item

    Returns:
        Normalized items (empty if no array could be found)
    """
    max_results = max_results or settings.SEARCH_MAX_RESULTS
    content_limit = content_limit or settings.SEARCH_CONTENT_LIMIT

    if isinstance(payload, (str, bytes)):
        try:
            payload = json.loads(payload)
        except (ValueError, TypeError):
            return []

    results = _find_result_list(payload)
    if results is None:
        return []

    items = []
    for raw_item in results:
        item = _project(raw_item, content_limit)
        if item:
            items.append(item)
        if len(items) >= max_results:
            break
    return items


def format_search_items(items: List[SearchResultItem]) -> str:
    """Render items as labeled "Source N" blocks"""
    blocks = []
    for i, item in enumerate(items, 1):
        lines = [f"Source {i}: {item.title or 'Untitled'}"]
        if item.url:
            lines.append(f"URL: {item.url}")
        if item.content:
            lines.append(item.content)
        blocks.append("\n".join(lines))
    return "\n\n".join(blocks)


def normalize_search_results(
    payload: Any,
    max_results: Optional[int] = None,
    content_limit: Optional[int] = None,
    passthrough_limit: Optional[int] = None
) -> Optional[str]:
    """
    Turn a raw search payload into prompt-ready text.

    Falls back to passing a non-empty string payload through verbatim
    (truncated) when no result array can be found.

    Returns:
        Formatted results, or None when nothing usable was returned
    """
    items = extract_search_items(payload, max_results=max_results, content_limit=content_limit)
    if items:
        return format_search_items(items)

    if isinstance(payload, str) and payload.strip():
        passthrough_limit = passthrough_limit or settings.SEARCH_PASSTHROUGH_LIMIT
        logger.info("Search payload had no result array, passing raw text through")
        return payload.strip()[:passthrough_limit]

    return None
