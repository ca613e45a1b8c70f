"""Tavily web search -- condensed search context via httpx (no SDK dependency)."""

from __future__ import annotations

import logging

import httpx

logger = logging.getLogger(__name__)

_SEARCH_URL = "https://api.tavily.com/search"

# Upper bound on the context handed to the answer prompt
MAX_CONTEXT_CHARS = 12000


class TavilySearch:
    """Implements the WebSearchProvider protocol.

    Returns the Tavily answer plus title/url/snippet blocks for the top
    results, or None when the search produced nothing.
    """

    def __init__(
        self,
        api_key: str,
        timeout: float = 15.0,
        include_answer: bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._include_answer = include_answer
        self._client = httpx.AsyncClient(
            timeout=timeout,
            headers={"Content-Type": "application/json", "Accept": "application/json"},
            transport=transport,
        )

    @property
    def name(self) -> str:
        return "tavily"

    async def search(
        self,
        query: str,
        depth: str = "basic",
        max_results: int = 5,
        topic: str | None = None,
    ) -> str | None:
        body = {
            "api_key": self._api_key,
            "query": query,
            "search_depth": depth,
            "include_answer": self._include_answer,
            "include_raw_content": False,
            "max_results": max_results,
            "topic": topic or "general",
        }

        response = await self._client.post(_SEARCH_URL, json=body)
        response.raise_for_status()
        data = response.json()
        if not data:
            return None

        parts: list[str] = []
        answer = (data.get("answer") or "").strip()
        if self._include_answer and answer:
            parts.append(f"Answer: {answer}")

        for result in (data.get("results") or [])[:max_results]:
            lines = []
            if result.get("title"):
                lines.append(f"Title: {result['title']}")
            if result.get("url"):
                lines.append(f"URL: {result['url']}")
            if result.get("snippet"):
                lines.append(f"Snippet: {result['snippet']}")
            elif result.get("content"):
                lines.append(f"Content: {result['content']}")
            if lines:
                parts.append("\n".join(lines))

        context = "\n\n".join(parts).strip()
        logger.debug("Tavily returned %d chars for %r", len(context), query)
        return context[:MAX_CONTEXT_CHARS] or None

    async def close(self) -> None:
        await self._client.aclose()
