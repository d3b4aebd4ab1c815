"""Client side of the personal vector-memory store.

Only the query contract lives here; persistence, embeddings and eviction
belong to the memory service.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Protocol
from urllib.parse import quote

import httpx

from .errors import UpstreamServiceError
from .types import ContextChunk

logger = logging.getLogger(__name__)


class MemoryStore(Protocol):
    async def search(
        self,
        caller_id: str,
        query_text: str,
        top_k: int,
        min_similarity: float,
    ) -> List[ContextChunk]:
        ...

    async def recent(self, caller_id: str, limit: int) -> List[ContextChunk]:
        ...


def _to_chunk(match: Dict[str, Any]) -> Optional[ContextChunk]:
    content = match.get("content") or match.get("text")
    if not content:
        return None
    context = match.get("context") or "memory"
    similarity = match.get("similarity", match.get("score", 0.0)) or 0.0
    return ContextChunk(
        text=content,
        source=f"User Memory ({context})",
        relevance=min(max(float(similarity), 0.0), 1.0),
    )


class HttpMemoryStore:
    """JSON-over-HTTP client for the memory service."""

    def __init__(self, endpoint: str, api_key: Optional[str] = None, timeout: float = 10.0):
        self.endpoint = endpoint.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def _request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        url = f"{self.endpoint}{path}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.request(method, url, headers=self._headers(), **kwargs)
                response.raise_for_status()
                return response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise UpstreamServiceError("memory", str(exc)) from exc

    async def search(
        self,
        caller_id: str,
        query_text: str,
        top_k: int,
        min_similarity: float,
    ) -> List[ContextChunk]:
        payload = await self._request(
            "POST",
            "/search",
            json={
                "userId": caller_id,
                "query": query_text,
                "topK": top_k,
                "minSimilarity": min_similarity,
            },
        )
        chunks = [chunk for chunk in map(_to_chunk, payload.get("matches", [])) if chunk]
        logger.debug("Memory search for %s returned %s matches", caller_id, len(chunks))
        return chunks

    async def recent(self, caller_id: str, limit: int) -> List[ContextChunk]:
        payload = await self._request(
            "GET",
            f"/users/{quote(caller_id, safe='')}/recent",
            params={"limit": limit},
        )
        return [chunk for chunk in map(_to_chunk, payload.get("matches", [])) if chunk]
