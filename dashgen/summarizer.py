from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .errors import UpstreamServiceError
from .llm import LLMClient, LLMClientFactory, LLMMessage
from .parse import StructuredOutputError, extract_json_object
from .types import (
    TITLE_MAX_LENGTH,
    Citation,
    ClassificationResult,
    DraftDocument,
    MergedContribution,
    Query,
    RetrievalContext,
)

logger = logging.getLogger(__name__)

ELLIPSIS = "..."

SYSTEM_PROMPT = """\
You are a data visualization expert. Convert the query and context into a
single dashboard JSON document.

SCHEMA:
{
  "type": "<visualization type, use the requested value>",
  "title": "string (1-120 chars)",
  "data": [{"label": "Item 1", "value": 100}, ...],
  "summary": "brief explanation (optional)",
  "config": {"xAxis": "string", "yAxis": "string", "colors": ["#RRGGBB"], "legend": true} (optional),
  "sublinks": [{"label": "text", "route": "/path", "context": {}}] (optional),
  "citations": [{"title": "text", "url": "https://...", "snippet": "text"}] (optional),
  "imagePrompt": "string (optional)"
}

RULES:
1. "data" MUST be an ARRAY of objects, at most 100 entries.
2. Charts: every data point has a string "label" and a numeric "value".
3. Narrative types (text, comparison, timeline, infographic): data points are
   sections with "heading", "bullets" (array of strings) and optional
   "description"; timeline events also carry "label" and "date".
4. Tables: each data point is one row of column -> value pairs.
5. Sublink routes start with "/".
6. Only cite URLs that appear in the context.
7. Return ONLY the JSON object, no markdown or explanation.
"""


def truncate_title(title: str, max_length: int = TITLE_MAX_LENGTH) -> str:
    if len(title) <= max_length:
        return title
    return title[: max_length - len(ELLIPSIS)] + ELLIPSIS


@dataclass
class SummarizerConfig:
    llm_section: str = "summarizer"
    temperature: float = 0.2
    max_tokens: int = 2000
    max_context_chars: int = 12000


class Summarizer:
    """Single structured-output call producing the draft document."""

    def __init__(self, config: SummarizerConfig, llm_factory: LLMClientFactory):
        self.config = config
        self._llm: LLMClient = llm_factory.build(config.llm_section)

    async def summarize(
        self,
        query: Query,
        classification: ClassificationResult,
        context: Optional[RetrievalContext],
        merged: Optional[MergedContribution] = None,
    ) -> DraftDocument:
        messages = [
            LLMMessage(role="system", content=SYSTEM_PROMPT),
            LLMMessage(role="user", content=self._build_prompt(query, classification, context, merged)),
        ]
        try:
            response = await self._llm.generate(
                messages,
                temperature=self.config.temperature,
                max_tokens=self.config.max_tokens,
                response_format={"type": "json_object"},
            )
        except UpstreamServiceError:
            raise
        except Exception as exc:
            raise UpstreamServiceError("summarizer", f"backend call failed: {exc}") from exc

        try:
            payload = extract_json_object(response.content)
        except StructuredOutputError as exc:
            logger.warning("Summarizer returned unparsable output: %s", exc)
            return DraftDocument(parse_error=f"Structured output could not be parsed: {exc}")

        self._apply_boundary_rules(payload, self._collect_citations(context, merged))
        return DraftDocument(payload=payload)

    def _build_prompt(
        self,
        query: Query,
        classification: ClassificationResult,
        context: Optional[RetrievalContext],
        merged: Optional[MergedContribution],
    ) -> str:
        lines = [
            f'Query: "{query.text}"',
            f"Visualization type: {classification.output_type.value} (use this exact value)",
            f"Complexity: {classification.complexity.value}",
        ]
        if classification.needs_image:
            lines.append('Include an "imagePrompt" describing an illustrative diagram.')
        lines.append("")
        lines.append("Retrieved context:")
        lines.append(self._context_string(context))
        if merged is not None:
            generated = merged.content[: self.config.max_context_chars]
            lines.append("")
            lines.append("Generated research (by source):")
            lines.append(generated)
        lines.append("")
        lines.append("Return ONLY the JSON document.")
        return "\n".join(lines)

    @staticmethod
    def _context_string(context: Optional[RetrievalContext]) -> str:
        if context is None or not context.chunks:
            return "No additional context available."
        return "\n\n".join(
            f"Chunk {index + 1} [{chunk.source}]: {chunk.text}"
            for index, chunk in enumerate(context.chunks)
        )

    @staticmethod
    def _collect_citations(
        context: Optional[RetrievalContext],
        merged: Optional[MergedContribution],
    ) -> List[Citation]:
        citations: Dict[str, Citation] = {}
        for group in (context.citations if context else [], merged.citations if merged else []):
            for citation in group:
                citations.setdefault(citation.url, citation)
        return list(citations.values())

    @staticmethod
    def _apply_boundary_rules(payload: Dict[str, Any], citations: List[Citation]) -> None:
        title = payload.get("title")
        if isinstance(title, str) and len(title) > TITLE_MAX_LENGTH:
            logger.info("Truncating %s-char title to %s", len(title), TITLE_MAX_LENGTH)
            payload["title"] = truncate_title(title)
        if citations and not payload.get("citations"):
            payload["citations"] = [citation.model_dump(exclude_none=True) for citation in citations]
