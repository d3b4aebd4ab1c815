from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Dict, List, Optional, Tuple

from .fanout import gather_settled
from .memory import MemoryStore
from .search import ExternalResearch
from .types import Citation, ClassificationResult, ContextChunk, OutputType, Query, RetrievalContext

logger = logging.getLogger(__name__)

PERSONAL_BRANCH = "personal_memory"
EXTERNAL_BRANCH = "external_research"

_VISUALIZATION_HINTS = {
    OutputType.PIE_CHART: "Focus on proportional relationships and percentage breakdowns",
    OutputType.BAR_CHART: "Emphasize comparative values and categorical data",
    OutputType.LINE_CHART: "Highlight trends over time and sequential data points",
    OutputType.TIMELINE: "Organize information chronologically with key dates and milestones",
    OutputType.TABLE: "Structure data in rows and columns with clear headers",
    OutputType.COMPARISON: "Emphasize contrasts, similarities and side-by-side points",
}


@dataclass
class RetrieverConfig:
    top_k: int = 5
    min_similarity: float = 0.7
    annotate_for_type: bool = False


class Retriever:
    """Personal memory + external research, ranked into one context."""

    def __init__(
        self,
        config: RetrieverConfig,
        memory: Optional[MemoryStore] = None,
        research: Optional[ExternalResearch] = None,
        branch_timeout: Optional[float] = 25.0,
    ):
        self.config = config
        self.memory = memory
        self.research = research
        self.branch_timeout = branch_timeout

    async def retrieve(
        self,
        query: Query,
        user_id: str,
        classification: ClassificationResult,
    ) -> RetrievalContext:
        branches: Dict[str, Awaitable[Tuple[List[ContextChunk], List[Citation]]]] = {}
        if classification.needs_personal_context:
            if self.memory is None:
                logger.info("Personal context requested but no memory store is configured.")
            else:
                branches[PERSONAL_BRANCH] = self._search_memory(self.memory, query.text, user_id)
        if classification.needs_external_context:
            if self.research is None:
                logger.info("External context requested but no research provider is configured.")
            else:
                branches[EXTERNAL_BRANCH] = self.research.search(query.text)

        if not branches:
            return RetrievalContext()

        outcomes = await gather_settled(branches, timeout=self.branch_timeout)
        chunks: List[ContextChunk] = []
        citations: List[Citation] = []
        # memory first so equal scores keep memory ahead of search results
        for name in (PERSONAL_BRANCH, EXTERNAL_BRANCH):
            outcome = outcomes.get(name)
            if outcome is None:
                continue
            if not outcome.ok or outcome.value is None:
                logger.warning("Retrieval branch %s contributed nothing: %s", name, outcome.describe_error())
                continue
            branch_chunks, branch_citations = outcome.value
            chunks.extend(branch_chunks)
            citations.extend(branch_citations)

        if self.config.annotate_for_type:
            chunks = [self._annotate(chunk, classification.output_type) for chunk in chunks]
        context = RetrievalContext.ordered(chunks, citations)
        logger.info(
            "Retrieved %s chunks and %s citations", len(context.chunks), len(context.citations)
        )
        return context

    async def _search_memory(
        self, memory: MemoryStore, text: str, user_id: str
    ) -> Tuple[List[ContextChunk], List[Citation]]:
        matches = await memory.search(
            user_id,
            text,
            top_k=self.config.top_k,
            min_similarity=self.config.min_similarity,
        )
        kept = [chunk for chunk in matches if chunk.relevance >= self.config.min_similarity]
        if len(kept) < len(matches):
            logger.debug("Dropped %s memory chunks below %.2f", len(matches) - len(kept), self.config.min_similarity)
        return kept[: self.config.top_k], []

    @staticmethod
    def _annotate(chunk: ContextChunk, output_type: OutputType) -> ContextChunk:
        hint = _VISUALIZATION_HINTS.get(
            output_type,
            f"Optimize content for {output_type.value.replace('_', ' ')} visualization format",
        )
        return chunk.model_copy(update={"text": f"{chunk.text} [Note: {hint}]"})
