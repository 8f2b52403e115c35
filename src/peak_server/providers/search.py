"""
peak_server/providers/search.py

Web-search augmentation for grounded text answers.

Order: Tavily, then Google Custom Search, then (only when
``enable_ddg_search`` is set) a keyless DuckDuckGo search.  Each backend
returns a block of ``[title](url): snippet`` lines or ``None``; no backend
is retried.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx
from ddgs import DDGS

from ..config import PeakSettings

logger = logging.getLogger("peak-server.search")

SEARCH_PREAMBLE: str = "[REAL-TIME SEARCH CONTEXT]:"
SEARCH_INSTRUCTION: str = "Use this context to answer accurately. Include sources."


def format_results(hits: list[dict[str, Any]], limit: int) -> str | None:
    """Render ``{title, url, snippet}`` hits as one markdown line each."""
    lines = [
        f"[{hit.get('title', '')}]({hit.get('url', '')}): {hit.get('snippet', '')}"
        for hit in hits[:limit]
    ]
    return "\n".join(lines) if lines else None


def splice_context(system_prompt: str, block: str) -> str:
    """Append a search block to *system_prompt* with the fixed preamble."""
    return f"{system_prompt}\n\n{SEARCH_PREAMBLE}\n{block}\n\n{SEARCH_INSTRUCTION}"


class WebSearch:
    """Search backends tried in order until one returns results."""

    def __init__(self, settings: PeakSettings, client: httpx.AsyncClient) -> None:
        self.settings = settings
        self.client = client

    async def augment(self, query: str) -> str | None:
        """Return a formatted result block for *query*, or ``None``."""
        for backend in (self._tavily, self._google, self._duckduckgo):
            block = await backend(query)
            if block:
                return block
        logger.info("[search] no search context for %r", query)
        return None

    async def _tavily(self, query: str) -> str | None:
        if not self.settings.tavily_api_key:
            logger.warning("[search] TAVILY_API_KEY not set; skipping Tavily")
            return None
        payload = {
            "api_key": self.settings.tavily_api_key,
            "query": query,
            "search_depth": "basic",
            "include_answer": True,
            "max_results": self.settings.search_max_results,
            "topic": "general",
        }
        try:
            response = await self.client.post(
                self.settings.tavily_url,
                json=payload,
                timeout=self.settings.request_timeout,
            )
            if not response.is_success:
                logger.error("[search] Tavily HTTP %d", response.status_code)
                return None
            results = response.json().get("results") or []
        except Exception as exc:
            logger.error("[search] Tavily failed: %s", exc, exc_info=True)
            return None

        hits = [
            {"title": r.get("title", ""), "url": r.get("url", ""), "snippet": r.get("content", "")}
            for r in results
        ]
        logger.info("[search] Tavily returned %d results", len(hits))
        return format_results(hits, self.settings.search_max_results)

    async def _google(self, query: str) -> str | None:
        if not self.settings.google_search_api_key:
            return None
        params = {
            "key": self.settings.google_search_api_key,
            "cx": self.settings.google_search_cx,
            "q": query,
            "num": "3",
        }
        try:
            response = await self.client.get(
                self.settings.google_search_url,
                params=params,
                timeout=self.settings.request_timeout,
            )
            if not response.is_success:
                logger.error("[search] Google HTTP %d", response.status_code)
                return None
            items = response.json().get("items") or []
        except Exception as exc:
            logger.error("[search] Google failed: %s", exc, exc_info=True)
            return None

        hits = [
            {"title": i.get("title", ""), "url": i.get("link", ""), "snippet": i.get("snippet", "")}
            for i in items
        ]
        return format_results(hits, self.settings.search_max_results)

    async def _duckduckgo(self, query: str) -> str | None:
        if not self.settings.enable_ddg_search:
            return None
        limit = self.settings.search_max_results

        def _run() -> list[dict[str, str]]:
            with DDGS() as ddgs:
                return [
                    {
                        "title": hit.get("title", ""),
                        "url": hit.get("href", ""),
                        "snippet": hit.get("body", ""),
                    }
                    for hit in ddgs.text(query, max_results=limit)
                ]

        try:
            hits = await asyncio.to_thread(_run)
        except Exception as exc:
            logger.error("[search] DDG error: %s", exc, exc_info=True)
            return None
        logger.info("[search] DDG returned %d results", len(hits))
        return format_results(hits, limit)
