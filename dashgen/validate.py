"""Contract checks and bounded, non-generative repair of drafted documents.

``validate`` is pure: it never calls a backend, and auto-correction runs at
most once per call. Checks operate on the raw payload so that a draft which
fails the schema still gets every other rule reported.
"""

from __future__ import annotations

import copy
import logging
import math
import re
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError as SchemaError

from .types import (
    RENDERABLE_TYPES,
    ClassificationResult,
    DashboardDocument,
    DraftDocument,
    OutputType,
    ValidationResult,
    is_absolute_url,
)

logger = logging.getLogger(__name__)

TITLE_WARNING_LENGTH = 100
SUMMARY_WARNING_LENGTH = 2000
SNIPPET_WARNING_LENGTH = 500
LARGE_DATASET = 1000

# Chart kinds whose points get synthesized ordinal labels.
LABELLED_CHART_TYPES = frozenset({OutputType.PIE_CHART.value, OutputType.BAR_CHART.value})

_HEX_COLOR = re.compile(r"^#[0-9A-F]{6}$", re.IGNORECASE)
_RGB_COLOR = re.compile(r"^rgba?\(", re.IGNORECASE)


class _Report:
    def __init__(self) -> None:
        self.errors: List[str] = []
        self.warnings: List[str] = []
        self.suggestions: List[str] = []


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _is_non_finite(value: Any) -> bool:
    return isinstance(value, float) and not math.isfinite(value)


def _output_type(payload: Dict[str, Any]) -> Optional[str]:
    # a non-string type is already reported by the schema check
    output_type = payload.get("type")
    return output_type if isinstance(output_type, str) else None


def _has_text(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def _points(payload: Dict[str, Any]) -> List[Dict[str, Any]]:
    data = payload.get("data")
    if not isinstance(data, list):
        return []
    return [point if isinstance(point, dict) else {} for point in data]


def normalize_route(route: str) -> str:
    """Prefix ``route`` with "/" when missing; already-rooted routes are unchanged."""

    stripped = route.strip()
    if stripped.startswith("/"):
        return stripped
    return f"/{stripped}"


def validate(
    draft: Union[DraftDocument, DashboardDocument, Dict[str, Any]],
    classification: ClassificationResult,
    auto_correct: bool = True,
) -> ValidationResult:
    parse_error: Optional[str] = None
    if isinstance(draft, DraftDocument):
        payload = draft.payload
        parse_error = draft.parse_error
    elif isinstance(draft, DashboardDocument):
        payload = draft.to_payload()
    else:
        payload = draft

    report = _Report()
    _check_schema(payload, parse_error, report)
    _check_type_consistency(payload, classification, report)
    _check_data_structure(payload, report)
    _check_configuration(payload, report)
    _check_sublinks(payload, report)
    _check_citations(payload, report)
    _check_content_quality(payload, report)
    _check_frontend_compatibility(payload, report)

    is_valid = not report.errors
    corrected: Optional[Dict[str, Any]] = None
    if not is_valid and auto_correct:
        corrected = auto_correct_payload(payload)

    logger.info(
        "Validation completed: valid=%s errors=%s warnings=%s suggestions=%s corrected=%s",
        is_valid,
        len(report.errors),
        len(report.warnings),
        len(report.suggestions),
        corrected is not None,
    )
    return ValidationResult(
        is_valid=is_valid,
        errors=report.errors,
        warnings=report.warnings,
        suggestions=report.suggestions,
        corrected_output=corrected,
    )


def _check_schema(payload: Dict[str, Any], parse_error: Optional[str], report: _Report) -> None:
    if parse_error:
        report.errors.append(parse_error)
    try:
        DashboardDocument.model_validate(payload)
    except SchemaError as exc:
        for err in exc.errors():
            path = ".".join(str(part) for part in err["loc"]) or "document"
            report.errors.append(f"Schema validation error: {path} - {err['msg']}")


def _check_type_consistency(
    payload: Dict[str, Any],
    classification: ClassificationResult,
    report: _Report,
) -> None:
    output_type = _output_type(payload)
    if output_type != classification.output_type.value:
        report.warnings.append(
            f'Output type "{output_type}" doesn\'t match classified type "{classification.output_type.value}"'
        )


def _check_data_structure(payload: Dict[str, Any], report: _Report) -> None:
    output_type = _output_type(payload)
    points = _points(payload)

    if output_type == OutputType.PIE_CHART.value:
        if any(not _is_number(point.get("value")) for point in points):
            report.errors.append("Pie chart requires numeric 'value' field in all data points")
        if any(not _has_text(point.get("label")) for point in points):
            report.errors.append("Pie chart requires 'label' field in all data points")
    elif output_type == OutputType.BAR_CHART.value:
        if any(not _is_number(point.get("value")) for point in points):
            report.errors.append("bar_chart requires numeric 'value' field in all data points")
        if any(not _has_text(point.get("label")) for point in points):
            report.errors.append("bar_chart requires 'label' field in all data points")
    elif output_type == OutputType.LINE_CHART.value:
        if any(not _is_number(point.get("value")) for point in points):
            report.errors.append("line_chart requires numeric 'value' field in all data points")
        if any(not _has_text(point.get("label")) and not _has_text(point.get("category")) for point in points):
            report.warnings.append("line_chart should have 'label' or 'category' field for x-axis")
    elif output_type == OutputType.TABLE.value:
        if not points:
            report.errors.append("Table visualization requires at least one data point")
    elif output_type == OutputType.TIMELINE.value:
        if any(not _has_text(point.get("label")) for point in points):
            report.errors.append("Timeline requires 'label' field for event descriptions")
        report.suggestions.append("Consider adding date/time information in data points")
    elif output_type == OutputType.TEXT.value:
        if not payload.get("summary") and not points:
            report.warnings.append("Text visualization should have either summary or data content")
    elif output_type == OutputType.COMPARISON.value:
        if len(points) < 2:
            report.warnings.append("Comparison visualization works best with multiple data sections")
    elif not points:
        report.warnings.append(f"{output_type} visualization has no data points")


def _check_configuration(payload: Dict[str, Any], report: _Report) -> None:
    config = payload.get("config")
    if config is None:
        report.suggestions.append("Consider adding configuration for better visualization control")
        return
    if not isinstance(config, dict):
        return

    colors = config.get("colors")
    if isinstance(colors, list):
        invalid = [
            str(color)
            for color in colors
            if not isinstance(color, str) or not (_HEX_COLOR.match(color) or _RGB_COLOR.match(color))
        ]
        if invalid:
            report.warnings.append(f"Invalid color formats detected: {', '.join(invalid)}")

    if _output_type(payload) != OutputType.GAUGE_CHART.value:
        return
    specific = config.get("chartSpecific") or config.get("chart_specific")
    if not isinstance(specific, dict):
        return
    low, high = specific.get("min"), specific.get("max")
    target = specific.get("gaugeTarget", specific.get("gauge_target"))
    if _is_number(low) and _is_number(high):
        if low >= high:
            report.errors.append("Gauge chart: min value must be less than max value")
        elif _is_number(target) and not low <= target <= high:
            report.warnings.append("Gauge target value is outside min/max range")


def _check_sublinks(payload: Dict[str, Any], report: _Report) -> None:
    sublinks = payload.get("sublinks")
    if not sublinks or not isinstance(sublinks, list):
        report.suggestions.append("Consider adding sublinks for better user exploration")
        return

    routes: List[str] = []
    for index, sublink in enumerate(sublinks, start=1):
        if not isinstance(sublink, dict):
            report.errors.append(f"Sublink {index}: must be an object")
            continue
        route = sublink.get("route")
        if not _has_text(sublink.get("label")):
            report.errors.append(f"Sublink {index}: Label is required and cannot be empty")
        if not _has_text(route):
            report.errors.append(f"Sublink {index}: Route is required and cannot be empty")
        else:
            routes.append(route)
            if not route.startswith("/"):
                report.errors.append(f"Sublink {index}: Route must start with '/' (got '{route}')")
            elif route.startswith("//"):
                report.errors.append(f"Sublink {index}: Route must be repo-relative, not '//' (got '{route}')")
        if not sublink.get("context"):
            report.warnings.append(f"Sublink {index}: Context object is empty - consider adding relevant data")

    duplicates = sorted({route for route in routes if routes.count(route) > 1})
    if duplicates:
        report.warnings.append(f"Duplicate sublink routes detected: {', '.join(duplicates)}")


def _check_citations(payload: Dict[str, Any], report: _Report) -> None:
    citations = payload.get("citations")
    if not isinstance(citations, list):
        return
    for index, citation in enumerate(citations, start=1):
        if not isinstance(citation, dict):
            report.errors.append(f"Citation {index}: must be an object")
            continue
        if not _has_text(citation.get("title")):
            report.errors.append(f"Citation {index}: Title is required")
        url = citation.get("url")
        if not isinstance(url, str) or not is_absolute_url(url):
            report.errors.append(f"Citation {index}: Invalid URL format")
        snippet = citation.get("snippet")
        if isinstance(snippet, str) and len(snippet) > SNIPPET_WARNING_LENGTH:
            report.warnings.append(f"Citation {index}: Snippet is quite long, consider shortening for better UX")


def _check_content_quality(payload: Dict[str, Any], report: _Report) -> None:
    title = payload.get("title")
    if not _has_text(title):
        report.errors.append("Dashboard title is required")
    elif len(title) > TITLE_WARNING_LENGTH:
        report.warnings.append("Dashboard title is quite long, consider shortening for better display")

    summary = payload.get("summary")
    if isinstance(summary, str) and len(summary) > SUMMARY_WARNING_LENGTH:
        report.warnings.append("Dashboard summary is very long, consider breaking into sections")

    if not _points(payload) and not summary and _output_type(payload) != OutputType.TEXT.value:
        report.warnings.append("Dashboard has no data points or summary content")


def _check_frontend_compatibility(payload: Dict[str, Any], report: _Report) -> None:
    output_type = _output_type(payload)
    if output_type not in {kind.value for kind in RENDERABLE_TYPES}:
        report.errors.append(f'Visualization type "{output_type}" is not supported by current frontend')

    image_url = payload.get("imageUrl")
    if image_url is not None and (not isinstance(image_url, str) or not is_absolute_url(image_url)):
        report.errors.append("Invalid image URL format")

    points = _points(payload)
    for index, point in enumerate(points, start=1):
        if any(_is_non_finite(value) for value in point.values()):
            report.errors.append(f"Data point {index}: NaN and Infinity cannot be rendered")

    if len(points) > LARGE_DATASET:
        report.warnings.append(
            "Large dataset detected, consider pagination or data reduction for better performance"
        )


def auto_correct_payload(payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Apply the fixed repair repertoire once; ``None`` when nothing applied."""

    corrected = copy.deepcopy(payload)
    changed = False
    output_type = _output_type(corrected)

    if not _has_text(corrected.get("title")):
        name = output_type.replace("_", " ").title() if _has_text(output_type) else "Dashboard"
        corrected["title"] = f"{name} Analysis"
        changed = True

    if output_type in LABELLED_CHART_TYPES and isinstance(corrected.get("data"), list):
        for index, point in enumerate(corrected["data"]):
            if isinstance(point, dict) and not _has_text(point.get("label")):
                point["label"] = f"Item {index + 1}"
                changed = True

    if isinstance(corrected.get("sublinks"), list):
        for sublink in corrected["sublinks"]:
            if not isinstance(sublink, dict):
                continue
            route = sublink.get("route")
            if _has_text(route) and not route.startswith("/"):
                sublink["route"] = normalize_route(route)
                changed = True

    if corrected.get("config") is None:
        corrected["config"] = {"responsive": True}
        changed = True

    return corrected if changed else None
