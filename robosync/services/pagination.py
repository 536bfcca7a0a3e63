"""Page-walking for the RobotEvents ``page`` / ``per_page`` endpoints."""
from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)

PER_PAGE = 250      # RobotEvents maximum
MAX_PAGES = 1000    # safety stop

FetchPage = Callable[[dict], Awaitable[Any]]


def _page_items(body: Any) -> tuple[list, bool]:
    """Return ``(items, paginated)`` for one response body.

    ``paginated`` is False for a lone object, which ends the walk.
    """
    if body is None:
        return [], True
    if isinstance(body, list):
        return body, True
    if isinstance(body, dict):
        if "data" in body or "meta" in body:
            data = body.get("data")
            # envelope without a usable array counts as an empty page
            return (data if isinstance(data, list) else []), True
        return [body], False
    return [], True


async def collect_all(
    fetch_page: FetchPage,
    params: dict | None = None,
    per_page: int = PER_PAGE,
    max_pages: int = MAX_PAGES,
) -> list:
    """Call *fetch_page* for page 1, 2, ... until a short page and return every item."""
    results: list = []
    for page in range(1, max_pages + 1):
        body = await fetch_page({**(params or {}), "page": page, "per_page": per_page})
        items, paginated = _page_items(body)
        results.extend(items)
        if not paginated or len(items) < per_page:
            return results
    logger.warning("Reached maximum page limit (%d), stopping pagination", max_pages)
    return results
