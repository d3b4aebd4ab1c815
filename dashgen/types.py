from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union
from urllib.parse import urlparse

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    StrictInt,
    confloat,
    field_validator,
    model_validator,
)

TITLE_MAX_LENGTH = 120
DATA_MAX_POINTS = 100
ANONYMOUS_CALLER = "anonymous"

# JSON responses cannot carry NaN or Infinity.
FiniteFloat = confloat(strict=True, allow_inf_nan=False)
FiniteNumber = confloat(allow_inf_nan=False)


class OutputType(str, Enum):
    """Visualization kinds a dashboard document can carry."""

    PIE_CHART = "pie_chart"
    BAR_CHART = "bar_chart"
    LINE_CHART = "line_chart"
    AREA_CHART = "area_chart"
    SCATTER_PLOT = "scatter_plot"
    RADAR_CHART = "radar_chart"
    TREEMAP = "treemap"
    HEATMAP = "heatmap"
    FUNNEL_CHART = "funnel_chart"
    GAUGE_CHART = "gauge_chart"
    WATERFALL_CHART = "waterfall_chart"
    SANKEY_DIAGRAM = "sankey_diagram"
    BUBBLE_CHART = "bubble_chart"
    CANDLESTICK_CHART = "candlestick_chart"
    HISTOGRAM = "histogram"
    TABLE = "table"
    TEXT = "text"
    TIMELINE = "timeline"
    COMPARISON = "comparison"
    INFOGRAPHIC = "infographic"
    ANALYTICS_SUMMARY = "analytics_summary"


# Kinds the current frontend can render.
RENDERABLE_TYPES = frozenset(
    {
        OutputType.PIE_CHART,
        OutputType.BAR_CHART,
        OutputType.LINE_CHART,
        OutputType.TABLE,
        OutputType.TEXT,
        OutputType.TIMELINE,
        OutputType.COMPARISON,
        OutputType.INFOGRAPHIC,
        OutputType.ANALYTICS_SUMMARY,
    }
)

NARRATIVE_TYPES = frozenset(
    {OutputType.TEXT, OutputType.COMPARISON, OutputType.TIMELINE, OutputType.INFOGRAPHIC}
)


def is_chart_bearing(output_type: OutputType) -> bool:
    return output_type != OutputType.TEXT


def is_absolute_url(value: str) -> bool:
    try:
        parsed = urlparse(value)
    except ValueError:
        return False
    return bool(parsed.scheme) and bool(parsed.netloc)


class Complexity(str, Enum):
    SIMPLE = "simple"
    MULTI_CHART = "multi_chart"
    DASHBOARD = "dashboard"


class Query(BaseModel):
    """Immutable per-request input."""

    model_config = ConfigDict(frozen=True)

    text: str = Field(..., min_length=1)
    caller_id: str = ANONYMOUS_CALLER
    use_memory: bool = False

    @property
    def is_authenticated(self) -> bool:
        return bool(self.caller_id) and self.caller_id != ANONYMOUS_CALLER


class ClassificationResult(BaseModel):
    """Intent decided once per query, read-only downstream."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    output_type: OutputType = Field(
        validation_alias=AliasChoices("output_type", "outputType", "type"),
    )
    complexity: Complexity = Complexity.SIMPLE
    needs_personal_context: bool = Field(
        default=False,
        validation_alias=AliasChoices("needs_personal_context", "needsPersonalContext", "requiresRAG"),
    )
    needs_external_context: bool = Field(
        default=False,
        validation_alias=AliasChoices("needs_external_context", "needsExternalContext", "requiresExternal"),
    )
    needs_image: bool = Field(
        default=False,
        validation_alias=AliasChoices("needs_image", "needsImage", "requiresImage"),
    )

    @property
    def needs_retrieval(self) -> bool:
        return self.needs_personal_context or self.needs_external_context


class Citation(BaseModel):
    title: str
    url: str
    snippet: Optional[str] = None

    @field_validator("url")
    @classmethod
    def _absolute_url(cls, value: str) -> str:
        if not is_absolute_url(value):
            raise ValueError("url must be an absolute URI")
        return value


class ContextChunk(BaseModel):
    text: str
    source: str
    relevance: float = Field(default=0.0, ge=0.0, le=1.0)


class RetrievalContext(BaseModel):
    """Ranked context chunks plus the citations that back them."""

    chunks: List[ContextChunk] = Field(default_factory=list)
    citations: List[Citation] = Field(default_factory=list)

    @classmethod
    def ordered(cls, chunks: List[ContextChunk], citations: List[Citation]) -> "RetrievalContext":
        # sorted() is stable, so equal scores keep arrival order
        ranked = sorted(chunks, key=lambda chunk: chunk.relevance, reverse=True)
        seen: Dict[str, Citation] = {}
        for citation in citations:
            seen.setdefault(citation.url, citation)
        return cls(chunks=ranked, citations=list(seen.values()))

    @property
    def is_empty(self) -> bool:
        return not self.chunks and not self.citations


class GenerationContribution(BaseModel):
    """Partial result of one generation source; empty when the source failed."""

    source: str
    header: str
    content: str = ""
    citations: List[Citation] = Field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return bool(self.content.strip())


class MergedContribution(BaseModel):
    content: str
    citations: List[Citation] = Field(default_factory=list)
    sources: List[str] = Field(default_factory=list)
    fallback: bool = False


class DataPoint(BaseModel):
    """Shared data point shape; kind-specific fields are optional."""

    model_config = ConfigDict(extra="allow")

    label: Optional[str] = None
    value: Optional[Union[StrictInt, FiniteFloat]] = None
    category: Optional[str] = None
    # narrative sections (text / comparison / infographic)
    heading: Optional[str] = None
    bullets: Optional[List[str]] = None
    description: Optional[str] = None
    # timeline events
    date: Optional[str] = None
    # scatter / line coordinates
    x: Optional[Union[StrictInt, FiniteFloat, str]] = None
    y: Optional[Union[StrictInt, FiniteFloat]] = None


class TooltipOptions(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    enabled: bool
    format: Optional[str] = None
    background_color: Optional[str] = Field(default=None, alias="backgroundColor")


class ChartSpecificOptions(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    min: Optional[FiniteNumber] = None
    max: Optional[FiniteNumber] = None
    gauge_target: Optional[FiniteNumber] = Field(default=None, alias="gaugeTarget")
    polar_angle_axis: Optional[str] = Field(default=None, alias="polarAngleAxis")
    polar_radius_axis: Optional[str] = Field(default=None, alias="polarRadiusAxis")
    intensity: Optional[str] = None
    size: Optional[str] = None
    hierarchy: Optional[List[str]] = None
    sankey_source: Optional[str] = Field(default=None, alias="sankeySource")
    sankey_target: Optional[str] = Field(default=None, alias="sankeyTarget")
    sankey_value: Optional[str] = Field(default=None, alias="sankeyValue")


class ChartConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    x_axis: Optional[str] = Field(default=None, alias="xAxis")
    y_axis: Optional[str] = Field(default=None, alias="yAxis")
    colors: Optional[List[str]] = None
    legend: Optional[bool] = None
    animation: Optional[bool] = None
    responsive: Optional[bool] = None
    grid_lines: Optional[bool] = Field(default=None, alias="gridLines")
    data_labels: Optional[bool] = Field(default=None, alias="dataLabels")
    zoom: Optional[bool] = None
    brush: Optional[bool] = None
    tooltip: Optional[TooltipOptions] = None
    chart_specific: Optional[ChartSpecificOptions] = Field(default=None, alias="chartSpecific")


class Sublink(BaseModel):
    """Pointer from a document to a follow-up, more specific view."""

    label: str
    route: str
    context: Dict[str, Any] = Field(default_factory=dict)
    category: Optional[str] = None
    priority: Optional[float] = None

    @field_validator("route")
    @classmethod
    def _relative_route(cls, value: str) -> str:
        if not value.startswith("/") or value.startswith("//"):
            raise ValueError("route must start with a single '/'")
        return value


class DashboardDocument(BaseModel):
    """The output contract delivered to callers."""

    model_config = ConfigDict(populate_by_name=True)

    type: OutputType
    title: str = Field(..., min_length=1, max_length=TITLE_MAX_LENGTH)
    data: List[DataPoint] = Field(default_factory=list, max_length=DATA_MAX_POINTS)
    config: Optional[ChartConfig] = None
    sublinks: Optional[List[Sublink]] = None
    summary: Optional[str] = None
    citations: Optional[List[Citation]] = None
    image_url: Optional[str] = Field(default=None, alias="imageUrl")
    image_prompt: Optional[str] = Field(default=None, alias="imagePrompt")

    @field_validator("image_url")
    @classmethod
    def _image_url(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not is_absolute_url(value):
            raise ValueError("imageUrl must be an absolute URI")
        return value

    @model_validator(mode="after")
    def _data_bounds(self) -> "DashboardDocument":
        if is_chart_bearing(self.type) and not self.data:
            raise ValueError(f"{self.type.value} requires at least one data point")
        return self

    def to_payload(self) -> Dict[str, Any]:
        """Wire form: camelCase keys, unset fields omitted."""

        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class DraftDocument(BaseModel):
    """Unvalidated summarizer output."""

    payload: Dict[str, Any] = Field(default_factory=dict)
    parse_error: Optional[str] = None


class ValidationResult(BaseModel):
    is_valid: bool
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    suggestions: List[str] = Field(default_factory=list)
    corrected_output: Optional[Dict[str, Any]] = None


class PipelineState(str, Enum):
    STARTED = "started"
    CLASSIFIED = "classified"
    CONTEXT_GATHERED = "context_gathered"
    DRAFTED = "drafted"
    VALIDATED = "validated"
    DELIVERED = "delivered"
    REJECTED = "rejected"


class DashboardRequest(BaseModel):
    """Incoming HTTP request."""

    model_config = ConfigDict(populate_by_name=True)

    query: str = Field(..., min_length=1, max_length=2000, description="Natural language question.")
    use_memory: bool = Field(default=False, alias="useMemory")
    caller_id: str = Field(default=ANONYMOUS_CALLER, alias="callerId")

    def to_query(self) -> Query:
        return Query(
            text=self.query,
            caller_id=self.caller_id or ANONYMOUS_CALLER,
            use_memory=self.use_memory,
        )


class ErrorResponse(BaseModel):
    error: str
    errors: Optional[List[str]] = None
    details: Optional[str] = None


class QueryLogEntry(BaseModel):
    user_id: str
    query: str
    response_type: str
    title: str = ""
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
