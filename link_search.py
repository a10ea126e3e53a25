"""
Programme page links from the Google Custom Search API.

Lookups never raise: missing credentials, HTTP errors and empty results all
give an empty list.
"""

from typing import Any, Dict, List, Optional
import httpx
import logging

from config import settings

logger = logging.getLogger(__name__)

SEARCH_URL = "https://www.googleapis.com/customsearch/v1"

def rank_links(items: List[Dict[str, Any]], program_name: str, max_results: int = 3) -> List[str]:
    """Results naming the programme in their title or URL first, then the rest, deduplicated."""
    needle = program_name.lower()
    matching = [
        item["link"] for item in items
        if needle in (item.get("title") or "").lower() or needle in (item.get("link") or "").lower()
    ]
    ordered = list(dict.fromkeys(matching + [item["link"] for item in items if item.get("link")]))
    return ordered[:max_results]

async def fetch_program_page_links(
    program_name: str,
    institution: str,
    max_results: int = 3,
    http: Optional[httpx.AsyncClient] = None,
) -> List[str]:
    if not settings.GOOGLE_API_KEY or not settings.GOOGLE_CX:
        logger.warning("GOOGLE_API_KEY or GOOGLE_CX not set, skipping page link search")
        return []

    params = {"key": settings.GOOGLE_API_KEY, "cx": settings.GOOGLE_CX, "q": f"{program_name} {institution}"}
    try:
        if http is None:
            async with httpx.AsyncClient(timeout=15.0) as client:
                response = await client.get(SEARCH_URL, params=params)
        else:
            response = await http.get(SEARCH_URL, params=params)
    except httpx.RequestError as e:
        logger.error(f"Custom search request failed: {e}")
        return []

    if response.status_code >= 400:
        logger.error(f"Custom search error: {response.status_code} {response.text}")
        return []

    try:
        items = response.json().get("items") or []
    except ValueError:
        logger.error("Custom search returned a non-JSON body")
        return []
    if not items:
        logger.warning(f"No search results for: {params['q']}")
        return []
    return rank_links(items, program_name, max_results)
