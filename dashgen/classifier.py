from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Protocol

from pydantic import ValidationError as SchemaError

from .errors import UpstreamServiceError
from .llm import LLMClient, LLMClientFactory, LLMMessage
from .parse import StructuredOutputError, extract_json_object
from .types import ClassificationResult, Complexity, OutputType, Query

logger = logging.getLogger(__name__)


SYSTEM_PROMPT = """\
You are a visualization classifier for a dashboard generation system.
Analyse the user's query and decide how the answer should be presented.

Visualization types (choose ONE):
- "pie_chart": proportions, percentages, parts of a whole, budget breakdown
- "bar_chart": comparisons between categories, rankings, performance metrics
- "line_chart": trends over time, growth, temporal data, forecasts
- "table": detailed listings, structured records, many attributes
- "text": explanations and concepts without quantitative data
- "timeline": chronological events, schedules, historical progressions
- "comparison": side-by-side analysis, before/after, pros/cons
- "infographic": visual summaries mixing charts, text and graphics
- "analytics_summary": KPI dashboards, business metrics overviews

Complexity: "simple" (one chart), "multi_chart" (several related charts),
"dashboard" (multi-panel overview).

Context flags:
- needsPersonalContext: the query is about the user's own data
  ("my spending", "our team", "my files")
- needsExternalContext: the query needs current or external information
  ("latest", "current market", "recent news")
- needsImage: a generated diagram or illustration would help

Return ONLY a JSON object:
{
  "outputType": "<type>",
  "complexity": "<complexity>",
  "needsPersonalContext": <bool>,
  "needsExternalContext": <bool>,
  "needsImage": <bool>
}
"""


class QueryClassifier(Protocol):
    async def classify(self, query: Query) -> ClassificationResult:
        ...


@dataclass
class ClassifierConfig:
    llm_section: str = "classifier"
    temperature: float = 0.1


class Classifier:
    """Single LLM call that decides output kind and context needs."""

    def __init__(self, config: ClassifierConfig, llm_factory: LLMClientFactory):
        self.config = config
        # ConfigurationError surfaces here, before any request is served
        self._llm: LLMClient = llm_factory.build(config.llm_section)

    async def classify(self, query: Query) -> ClassificationResult:
        logger.info("Classifying query: %s", query.text)
        messages = [
            LLMMessage(role="system", content=SYSTEM_PROMPT),
            LLMMessage(
                role="user",
                content=(
                    f'Classify this query: "{query.text}"\n'
                    "Respond with the JSON object only."
                ),
            ),
        ]
        try:
            response = await self._llm.generate(
                messages,
                temperature=self.config.temperature,
                response_format={"type": "json_object"},
            )
        except UpstreamServiceError:
            raise
        except Exception as exc:
            raise UpstreamServiceError("classifier", f"backend call failed: {exc}") from exc

        try:
            payload = extract_json_object(response.content)
            result = ClassificationResult.model_validate(payload)
        except (StructuredOutputError, SchemaError) as exc:
            raise UpstreamServiceError("classifier", f"malformed classification: {exc}") from exc
        logger.info(
            "Classified as %s (%s) personal=%s external=%s image=%s",
            result.output_type.value,
            result.complexity.value,
            result.needs_personal_context,
            result.needs_external_context,
            result.needs_image,
        )
        return result


_PERSONAL = re.compile(r"\b(my|mine|our|company|organization|team|personal|custom|uploaded|dataset|i)\b")
_EXTERNAL = re.compile(r"\b(latest|current|recent|news|market|trends|today|now|updated|live)\b")
_IMAGE = re.compile(r"\b(diagram|illustration|draw|graphic|image|picture)\b")

# Checked in order; first match wins.
_TYPE_PATTERNS = [
    (OutputType.ANALYTICS_SUMMARY, re.compile(r"\b(kpi|kpis|analytics|dashboard|statistics)\b")),
    (
        OutputType.PIE_CHART,
        re.compile(r"\b(distribution|percentage|proportion|share|breakdown|composition|allocation|budget|spend|spending|spent)\b"),
    ),
    (
        OutputType.LINE_CHART,
        re.compile(r"\b(trend|trends|growth|over time|progress|forecast|projection|evolution)\b"),
    ),
    (OutputType.BAR_CHART, re.compile(r"\b(ranking|rank|performance|metrics|categories|top \d+)\b")),
    (OutputType.TIMELINE, re.compile(r"\b(schedule|roadmap|chronology|history|sequence|milestones|phases)\b")),
    (
        OutputType.COMPARISON,
        re.compile(r"\b(compare|comparison|contrast|difference|versus|vs|pros|cons|advantages|disadvantages)\b"),
    ),
    (OutputType.TABLE, re.compile(r"\b(list|table|details|records|entries|rows|columns)\b")),
    (OutputType.INFOGRAPHIC, re.compile(r"\b(infographic|visual summary|guide|process)\b")),
]

_MULTI_CONCEPT = re.compile(r"\b(and|or|also|plus|including)\b")
_DASHBOARD_WORDS = re.compile(r"\b(dashboard|comprehensive|detailed|full|complete)\b")


class KeywordClassifier:
    """Deterministic offline classifier; makes no backend call."""

    async def classify(self, query: Query) -> ClassificationResult:
        return classify_by_keywords(query.text)


def classify_by_keywords(text: str) -> ClassificationResult:
    normalized = text.lower()
    output_type = OutputType.TEXT
    for candidate, pattern in _TYPE_PATTERNS:
        if pattern.search(normalized):
            output_type = candidate
            break

    complexity = Complexity.SIMPLE
    if output_type == OutputType.ANALYTICS_SUMMARY:
        complexity = Complexity.DASHBOARD
    elif output_type == OutputType.INFOGRAPHIC:
        complexity = Complexity.MULTI_CHART
    if complexity == Complexity.SIMPLE and (
        len(normalized.split()) > 20 or _MULTI_CONCEPT.search(normalized)
    ):
        complexity = Complexity.MULTI_CHART
    if _DASHBOARD_WORDS.search(normalized):
        complexity = Complexity.DASHBOARD

    return ClassificationResult(
        output_type=output_type,
        complexity=complexity,
        needs_personal_context=bool(_PERSONAL.search(normalized)),
        needs_external_context=bool(_EXTERNAL.search(normalized)),
        needs_image=bool(_IMAGE.search(normalized)),
    )
