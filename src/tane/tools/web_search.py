"""Web search tool backed by a SearXNG instance, with offline fallback results."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass
from typing import Any

import httpx

from tane.provider.base import ToolDefinition

logger = logging.getLogger(__name__)

DEFAULT_SEARXNG_URL = "http://searxng:8080"
DEFAULT_TIMEOUT_SECONDS = 5.0
DEFAULT_MAX_RESULTS = 5
TOOL_NAME = "web_search"


@dataclass(slots=True)
class SearchResult:
    """One search hit in the shape handed to the agent."""

    title: str
    url: str
    snippet: str


class WebSearchTool:
    """Query SearXNG's JSON API.

    Search never raises: a non-2xx answer, a timeout, a network error or an
    unparsable body is logged and answered with synthetic ``[MOCK]`` results
    so the research run continues with degraded input.
    """

    def __init__(
        self,
        *,
        base_url: str = DEFAULT_SEARXNG_URL,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        max_results: int = DEFAULT_MAX_RESULTS,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.max_results = max_results
        self._client = httpx.Client(
            timeout=httpx.Timeout(timeout_seconds),
            headers={"Accept": "application/json"},
            transport=transport,
        )

    def search(self, query: str) -> list[SearchResult]:
        logger.info('Querying "%s" at %s', query, self.base_url)
        try:
            response = self._client.get(
                f"{self.base_url}/search",
                params={
                    "q": query,
                    "format": "json",
                    "categories": "general",
                    "language": "en-US",
                },
            )
            if not response.is_success:
                raise httpx.HTTPStatusError(
                    f"SearXNG returned {response.status_code}: {response.reason_phrase}",
                    request=response.request,
                    response=response,
                )
            raw_results = _results_list(response.json())
        except (httpx.HTTPError, ValueError) as error:
            logger.warning("Search backend failed for %r, using fallback results: %s", query, error)
            return fallback_results(query)

        if not raw_results:
            logger.warning("No results found for %r", query)
            return []

        results: list[SearchResult] = []
        for raw in raw_results[: self.max_results]:
            if not isinstance(raw, dict):
                continue
            results.append(
                SearchResult(
                    title=str(raw.get("title") or ""),
                    url=str(raw.get("url") or ""),
                    snippet=str(raw.get("content") or raw.get("snippet") or ""),
                ),
            )
        return results

    def execute(self, arguments: dict[str, Any]) -> str:
        query = str(arguments.get("query") or "").strip()
        if not query:
            return json.dumps([])
        return json.dumps([asdict(result) for result in self.search(query)], ensure_ascii=False)

    def as_tool(self) -> ToolDefinition:
        return ToolDefinition(
            name=TOOL_NAME,
            label="Web Search",
            description="Search the web for information about a topic using SearXNG.",
            parameters={
                "type": "object",
                "properties": {
                    "query": {"type": "string", "description": "The search query to perform."},
                },
                "required": ["query"],
            },
            execute=self.execute,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> WebSearchTool:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()


def _results_list(payload: object) -> list[Any]:
    if not isinstance(payload, dict):
        raise ValueError(f"expected a JSON object, got {type(payload).__name__}")
    raw_results = payload.get("results")
    if raw_results is None:
        return []
    if not isinstance(raw_results, list):
        raise ValueError(f"'results' is {type(raw_results).__name__}, not a list")
    return raw_results


def fallback_results(query: str) -> list[SearchResult]:
    """Synthetic results used when the search backend is unavailable."""

    lowered = query.lower()
    if "competitor" in lowered or "market" in lowered:
        return [
            SearchResult(
                title="[MOCK] Top Competitors (search backend unavailable)",
                url="",
                snippet="Major players include Company A and Startup B. Market is growing.",
            ),
            SearchResult(
                title="[MOCK] Market Analysis",
                url="",
                snippet="Global market size estimated at $5B.",
            ),
        ]
    return [
        SearchResult(
            title=f"[MOCK] General Info about {query}",
            url="",
            snippet="This is a rapidly evolving field.",
        ),
    ]
