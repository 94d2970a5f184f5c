"""Information lookup: Brave API, then a pool of SearxNG instances, then offline placeholders."""

import logging
from typing import Any, Dict, List, Optional

import httpx

from .brave import BraveSearchClient
from .schemas import SearchResponse, SearchResult


logger = logging.getLogger("uvicorn.error")

SEARXNG_ENGINES = "google,bing,duckduckgo"
SEARXNG_USER_AGENT = "Mozilla/5.0 (compatible; AgentHubBot/1.0)"


def _clip(results: List[Dict[str, Any]], max_results: int) -> List[Dict[str, Any]]:
    return [r for r in results if isinstance(r, dict)][: max(0, max_results)]


def brave_to_response(query: str, data: Dict[str, Any], max_results: int) -> SearchResponse:
    web = data.get("web") or {}
    results = [
        SearchResult(
            title=item.get("title") or "",
            url=item.get("url") or "",
            content=item.get("description") or "",
            published_date=item.get("age"),
        )
        for item in _clip(web.get("results") or [], max_results)
    ]
    return SearchResponse(query=query, results=results, source="brave")


def searxng_to_response(query: str, data: Dict[str, Any], max_results: int) -> SearchResponse:
    results = [
        SearchResult(
            title=item.get("title") or "",
            url=item.get("url") or "",
            content=item.get("content") or "",
            published_date=item.get("publishedDate"),
        )
        for item in _clip(data.get("results") or [], max_results)
    ]
    return SearchResponse(query=query, results=results, source="searxng")


def offline_results(query: str, max_results: int = 5) -> SearchResponse:
    """Deterministic placeholder results, always at least one, flagged as offline."""
    placeholders = [
        SearchResult(
            title=f"Information about: {query}",
            url="https://example.com/result1",
            content=(
                f'This is a placeholder result for "{query}". No live search provider answered, '
                "so no real web results are available."
            ),
        ),
        SearchResult(
            title="Latest updates and news",
            url="https://example.com/result2",
            content="Placeholder results are being used. Configure a search API key to get actual web results.",
        ),
        SearchResult(
            title="Documentation and resources",
            url="https://example.com/result3",
            content="For production use, set BRAVE_SEARCH_API_KEY or reachable SEARXNG_INSTANCES.",
        ),
    ]
    return SearchResponse(
        query=query,
        results=placeholders[: max(1, max_results)],
        source="offline",
        offline=True,
    )


def format_search_results(response: SearchResponse) -> str:
    if response.number_of_results == 0:
        return f'No search results found for "{response.query}".'
    lines = [f'Search results for "{response.query}":', ""]
    if response.offline:
        lines = [f'Offline placeholder results for "{response.query}" (no live provider answered):', ""]
    for index, result in enumerate(response.results, start=1):
        lines.append(f"[{index}] {result.title}")
        lines.append(f"URL: {result.url}")
        lines.append(result.content)
        if result.published_date:
            lines.append(f"Published: {result.published_date}")
        lines.append("")
    return "\n".join(lines)


class SearchChain:
    """Sequential fallback over lookup providers. ``lookup`` never raises."""

    def __init__(
        self,
        brave: BraveSearchClient,
        searxng_instances: List[str],
        timeout_s: float = 5.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.brave = brave
        self.searxng_instances = list(searxng_instances)
        self.timeout_s = timeout_s
        self.client = client or httpx.AsyncClient(timeout=timeout_s)

    @property
    def mode(self) -> str:
        if self.brave.enabled:
            return "brave"
        if self.searxng_instances:
            return "searxng"
        return "offline"

    async def lookup(self, query: str, max_results: int = 5) -> SearchResponse:
        if self.brave.enabled:
            response = await self._search_brave(query, max_results)
            if response.number_of_results > 0:
                return response
        for instance in self.searxng_instances:
            response = await self._search_searxng(instance, query, max_results)
            if response is not None and response.number_of_results > 0:
                return response
        logger.warning("No search provider answered for %r; using offline placeholder results", query)
        return offline_results(query, max_results)

    async def _search_brave(self, query: str, max_results: int) -> SearchResponse:
        try:
            data = await self.brave.search(query, max_results=max_results)
            if data.get("error"):
                logger.warning("Brave search failed: %s", data)
                return SearchResponse(query=query, source="brave")
            return brave_to_response(query, data, max_results)
        except (ValueError, TypeError, AttributeError) as exc:
            # pydantic ValidationError is a ValueError
            logger.warning("Brave returned unusable results: %s", exc)
            return SearchResponse(query=query, source="brave")

    async def _search_searxng(self, instance: str, query: str, max_results: int) -> Optional[SearchResponse]:
        params = {
            "q": query,
            "format": "json",
            "engines": SEARXNG_ENGINES,
            "safesearch": "0",
        }
        try:
            resp = await self.client.get(
                f"{instance.rstrip('/')}/search",
                params=params,
                headers={"User-Agent": SEARXNG_USER_AGENT},
                timeout=self.timeout_s,
            )
        except httpx.HTTPError as exc:
            logger.warning("Search failed for %s: %s", instance, exc)
            return None
        if resp.status_code < 200 or resp.status_code >= 300:
            logger.warning("Search failed for %s: status %s", instance, resp.status_code)
            return None
        try:
            data = resp.json()
        except ValueError:
            logger.warning("%s returned invalid JSON", instance)
            return None
        if not isinstance(data, dict):
            return None
        try:
            return searxng_to_response(query, data, max_results)
        except (ValueError, TypeError, AttributeError) as exc:
            logger.warning("%s returned unusable results: %s", instance, exc)
            return None

    async def close(self) -> None:
        await self.brave.close()
        if not self.client.is_closed:
            await self.client.aclose()
