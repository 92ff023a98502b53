"""Web search through the Tavily API."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any

import httpx

from voicerewind.common.structured_logging import get_logger

logger = get_logger(__name__, service_name="voicerewind")

TAVILY_SEARCH_URL = "https://api.tavily.com/search"
MAX_RESULTS = 5


@dataclass(slots=True, frozen=True)
class SearchResult:
    title: str
    url: str
    content: str

    def to_dict(self) -> dict[str, str]:
        return {"title": self.title, "url": self.url, "content": self.content}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SearchResult:
        return cls(
            title=str(data.get("title") or ""),
            url=str(data.get("url") or ""),
            content=str(data.get("content") or ""),
        )


def format_sources(results: list[SearchResult]) -> list[dict[str, Any]]:
    """Numbered source list matching the ``[n]`` citations of an answer."""
    return [
        {"i": position, "title": result.title or "Untitled", "url": result.url or "#"}
        for position, result in enumerate(results, start=1)
    ]


class TavilySearch:
    """Basic-depth Tavily search; failures yield no results."""

    def __init__(
        self,
        api_key: str,
        http_client: httpx.AsyncClient,
        max_results: int = MAX_RESULTS,
        url: str = TAVILY_SEARCH_URL,
    ) -> None:
        self.max_results = max_results
        self.url = url
        self._api_key = api_key
        self._http = http_client
        self._logger = logger

    async def search(self, query: str) -> list[SearchResult]:
        start_time = time.time()
        try:
            response = await self._http.post(
                self.url,
                json={
                    "api_key": self._api_key,
                    "query": query,
                    "search_depth": "basic",
                    "max_results": self.max_results,
                    "include_answer": False,
                },
            )
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            self._logger.error(
                "web_search.request_failed",
                error=str(exc),
                error_type=type(exc).__name__,
                processing_time_ms=(time.time() - start_time) * 1000,
            )
            return []

        raw_results = payload.get("results") if isinstance(payload, dict) else None
        results = [
            SearchResult.from_dict(item)
            for item in raw_results or []
            if isinstance(item, dict)
        ]
        self._logger.info(
            "web_search.completed",
            query_chars=len(query),
            results=len(results),
            processing_time_ms=(time.time() - start_time) * 1000,
        )
        return results


__all__ = ["MAX_RESULTS", "SearchResult", "TavilySearch", "format_sources"]
