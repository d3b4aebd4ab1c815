from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from .errors import ConfigurationError
from .fanout import gather_settled
from .llm import LLMClient, LLMClientFactory, LLMMessage
from .types import (
    Citation,
    ClassificationResult,
    GenerationContribution,
    MergedContribution,
    OutputType,
    Query,
)

logger = logging.getLogger(__name__)

FALLBACK_SOURCE = "fallback"
FALLBACK_CONTENT = (
    "No content could be generated from available AI services. "
    "Please check your API configurations."
)
SECTION_SEPARATOR = "\n\n---\n\n"

BROAD_KNOWLEDGE = "broad_knowledge"
RESEARCH_CURRENT = "research_current"
AUXILIARY = "auxiliary"

# Merge priority: broad knowledge first, current research second, auxiliary last.
SOURCE_PRIORITY = (BROAD_KNOWLEDGE, RESEARCH_CURRENT, AUXILIARY)

_HEADERS = {
    BROAD_KNOWLEDGE: "Comprehensive Overview",
    RESEARCH_CURRENT: "Research & Current Information",
    AUXILIARY: "Additional Insights",
}

_INSTRUCTIONS = {
    BROAD_KNOWLEDGE: (
        "Write a comprehensive, well-structured article. Use clear headings, "
        "key facts and statistics, historical context, current status and "
        "practical implications."
    ),
    RESEARCH_CURRENT: (
        "You are a knowledgeable research assistant. Provide well-structured "
        "information with specific facts and current data. Cite real sources."
    ),
    AUXILIARY: "Explain the topic in detail.",
}


@dataclass
class GenerationSource:
    """One generation backend behind the uniform ``generate`` contract."""

    name: str
    client: LLMClient
    header: str
    instructions: str
    output_types: Optional[Sequence[OutputType]] = None
    min_content_length: int = 0
    generation_kwargs: Dict[str, Any] = field(default_factory=dict)

    def eligible(self, classification: ClassificationResult) -> bool:
        if not self.output_types:
            return True
        return classification.output_type in self.output_types

    async def generate(self, prompt: str, instructions: Optional[str] = None) -> GenerationContribution:
        messages = [
            LLMMessage(role="system", content=instructions or self.instructions),
            LLMMessage(role="user", content=prompt),
        ]
        response = await self.client.generate(messages, **self.generation_kwargs)
        content = response.content.strip()
        if len(content) < self.min_content_length:
            logger.info(
                "Source %s returned %s chars (< %s); discarding.",
                self.name,
                len(content),
                self.min_content_length,
            )
            content = ""
        return GenerationContribution(
            source=self.name,
            header=self.header,
            content=content,
            citations=response.citations,
        )


def fallback_contribution() -> GenerationContribution:
    return GenerationContribution(
        source=FALLBACK_SOURCE,
        header="No Content Available",
        content=FALLBACK_CONTENT,
    )


def build_prompt(query: Query, classification: ClassificationResult) -> str:
    return (
        f"Provide detailed information about: {query.text}\n"
        f"The answer will be presented as a {classification.output_type.value.replace('_', ' ')}; "
        "include concrete figures, categories and dates where they exist. "
        "Structure the response with clear sections and key points."
    )


class SourceAggregator:
    """Queries every eligible generation source concurrently, tolerating failures."""

    def __init__(self, sources: Sequence[GenerationSource], branch_timeout: Optional[float] = 25.0):
        rank = {name: idx for idx, name in enumerate(SOURCE_PRIORITY)}
        self.sources: List[GenerationSource] = sorted(
            sources, key=lambda source: rank.get(source.name, len(rank))
        )
        self.branch_timeout = branch_timeout

    @classmethod
    def from_config(
        cls,
        llm_factory: LLMClientFactory,
        sources_config: Dict[str, Any],
        branch_timeout: Optional[float] = 25.0,
    ) -> "SourceAggregator":
        sources: List[GenerationSource] = []
        for name in SOURCE_PRIORITY:
            cfg = sources_config.get(name) or {}
            if not cfg or not cfg.get("enabled", True):
                logger.info("Generation source %s disabled.", name)
                continue
            try:
                client = llm_factory.build(name)
            except ConfigurationError as exc:
                # optional source; missing credentials only make it ineligible
                logger.warning("Generation source %s not configured: %s", name, exc)
                continue
            output_types = [OutputType(value) for value in cfg.get("output_types") or []]
            sources.append(
                GenerationSource(
                    name=name,
                    client=client,
                    header=cfg.get("header") or _HEADERS[name],
                    instructions=cfg.get("instructions") or _INSTRUCTIONS[name],
                    output_types=output_types or None,
                    min_content_length=int(cfg.get("min_content_length", 50 if name == AUXILIARY else 0)),
                    generation_kwargs={
                        "temperature": float(cfg.get("temperature", 0.4)),
                        "max_tokens": int(cfg.get("max_tokens", 2000)),
                    },
                )
            )
        return cls(sources, branch_timeout=branch_timeout)

    def eligible_sources(self, classification: ClassificationResult) -> List[GenerationSource]:
        return [source for source in self.sources if source.eligible(classification)]

    async def aggregate(
        self,
        query: Query,
        classification: ClassificationResult,
    ) -> List[GenerationContribution]:
        eligible = self.eligible_sources(classification)
        if not eligible:
            logger.info("No eligible generation sources; using fallback content.")
            return [fallback_contribution()]

        prompt = build_prompt(query, classification)
        outcomes = await gather_settled(
            {source.name: source.generate(prompt) for source in eligible},
            timeout=self.branch_timeout,
        )

        contributions: List[GenerationContribution] = []
        for source in eligible:
            outcome = outcomes[source.name]
            if outcome.ok and outcome.value is not None:
                contributions.append(outcome.value)
                continue
            contributions.append(
                GenerationContribution(
                    source=source.name,
                    header=source.header,
                    error=outcome.describe_error(),
                )
            )

        succeeded = [item for item in contributions if item.ok]
        logger.info(
            "Aggregated %s/%s generation sources: %s",
            len(succeeded),
            len(eligible),
            ", ".join(item.source for item in succeeded) or "none",
        )
        if not succeeded:
            return [fallback_contribution()]
        return contributions

    @staticmethod
    def merge(contributions: Sequence[GenerationContribution]) -> MergedContribution:
        rank = {name: idx for idx, name in enumerate(SOURCE_PRIORITY)}
        ordered = sorted(
            (item for item in contributions if item.ok),
            key=lambda item: rank.get(item.source, len(rank)),
        )
        if not ordered:
            fallback = fallback_contribution()
            return MergedContribution(content=fallback.content, sources=[fallback.source], fallback=True)
        if len(ordered) == 1 and ordered[0].source == FALLBACK_SOURCE:
            return MergedContribution(content=ordered[0].content, sources=[FALLBACK_SOURCE], fallback=True)

        sections = [f"# {item.header}\n\n{item.content}" for item in ordered]
        citations: Dict[str, Citation] = {}
        for item in ordered:
            for citation in item.citations:
                citations.setdefault(citation.url, citation)
        return MergedContribution(
            content=SECTION_SEPARATOR.join(sections),
            citations=list(citations.values()),
            sources=[item.source for item in ordered],
        )
