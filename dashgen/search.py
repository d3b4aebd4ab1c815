from __future__ import annotations

import abc
import logging
from typing import Any, Dict, List, Optional, Tuple

import httpx
from pydantic import BaseModel

from .errors import UpstreamServiceError
from .types import Citation, ContextChunk, is_absolute_url

logger = logging.getLogger(__name__)


class SearchResult(BaseModel):
    """SERP result entry."""

    url: str
    title: str
    snippet: str = ""
    score: float = 0.0


class SearchProvider(abc.ABC):
    """Abstract search provider."""

    def __init__(self, timeout: float = 10.0):
        self.timeout = timeout

    @abc.abstractmethod
    async def search(self, query: str, top_k: int = 10) -> List[SearchResult]:
        raise NotImplementedError


class BraveSearchProvider(SearchProvider):
    """Brave search API implementation."""

    def __init__(
        self,
        api_key: str,
        endpoint: str = "https://api.search.brave.com/res/v1/web/search",
        timeout: float = 10.0,
        freshness_days: Optional[int] = None,
    ):
        super().__init__(timeout=timeout)
        self.api_key = api_key
        self.endpoint = endpoint.rstrip("/")
        self.freshness_days = freshness_days

    async def search(self, query: str, top_k: int = 10) -> List[SearchResult]:
        params: Dict[str, Any] = {"q": query, "count": top_k}
        if self.freshness_days:
            params["freshness"] = f"pd:{self.freshness_days}d"
        headers = {
            "Accept": "application/json",
            "X-Subscription-Token": self.api_key,
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(self.endpoint, params=params, headers=headers)
                response.raise_for_status()
                payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise UpstreamServiceError("brave_search", str(exc)) from exc
        return self._parse(payload)

    def _parse(self, payload: Dict[str, Any]) -> List[SearchResult]:
        web_results = payload.get("web", {}).get("results", [])
        results: List[SearchResult] = []
        total = len(web_results)
        for rank, item in enumerate(web_results):
            url = item.get("url")
            if not url or not is_absolute_url(url):
                continue
            # Brave does not always score results; fall back to rank position
            score = item.get("score")
            if score is None:
                score = 1.0 - rank / max(total, 1)
            results.append(
                SearchResult(
                    url=url,
                    title=item.get("title") or "Untitled",
                    snippet=item.get("description") or item.get("snippet", ""),
                    score=float(score),
                )
            )
        return results


class ExternalResearch:
    """Turns one web search into ranked context chunks and citations."""

    def __init__(self, provider: SearchProvider, top_k: int = 5, snippet_limit: int = 500):
        self.provider = provider
        self.top_k = top_k
        self.snippet_limit = snippet_limit

    async def search(self, query_text: str) -> Tuple[List[ContextChunk], List[Citation]]:
        results = await self.provider.search(query_text, top_k=self.top_k)
        seen_urls: Dict[str, SearchResult] = {}
        for result in results:
            existing = seen_urls.get(result.url)
            if existing is None or result.score > existing.score:
                seen_urls[result.url] = result

        chunks: List[ContextChunk] = []
        citations: List[Citation] = []
        for result in list(seen_urls.values())[: self.top_k]:
            text = result.snippet or result.title
            chunks.append(
                ContextChunk(
                    text=text,
                    source=result.title,
                    relevance=min(max(result.score, 0.0), 1.0),
                )
            )
            snippet = result.snippet[: self.snippet_limit] if result.snippet else None
            citations.append(Citation(title=result.title, url=result.url, snippet=snippet))
        logger.info("External research returned %s results for %r", len(chunks), query_text)
        return chunks, citations
