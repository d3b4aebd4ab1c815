"""Tests for contract validation and auto-correction."""

import pytest

from conftest import classification, pie_payload
from dashgen.types import DashboardDocument, DraftDocument, OutputType
from dashgen.validate import auto_correct_payload, normalize_route, validate


def test_valid_pie_chart():
    result = validate(DraftDocument(payload=pie_payload()), classification(OutputType.PIE_CHART))

    assert result.is_valid
    assert result.errors == []
    assert result.corrected_output is None


def test_accepts_documents_and_raw_payloads():
    document = DashboardDocument.model_validate(pie_payload())

    assert validate(document, classification()).is_valid
    assert validate(pie_payload(), classification()).is_valid


def test_type_mismatch_is_only_a_warning():
    result = validate(pie_payload(), classification(OutputType.BAR_CHART))

    assert result.is_valid
    assert any("doesn't match classified type" in warning for warning in result.warnings)


def test_missing_labels_are_repaired_for_pie_charts():
    payload = pie_payload(data=[{"label": "Rent", "value": 1500}, {"value": 300}, {"label": " ", "value": 20}])

    result = validate(payload, classification())

    assert not result.is_valid
    assert "Pie chart requires 'label' field in all data points" in result.errors
    corrected = result.corrected_output
    assert [point["label"] for point in corrected["data"]] == ["Rent", "Item 2", "Item 3"]
    assert validate(corrected, classification(), auto_correct=False).is_valid


def test_non_numeric_value_is_not_repairable():
    result = validate(pie_payload(data=[{"label": "Rent", "value": "1500"}]), classification())

    assert not result.is_valid
    assert "Pie chart requires numeric 'value' field in all data points" in result.errors
    corrected = result.corrected_output
    assert corrected is None or not validate(corrected, classification(), auto_correct=False).is_valid


def test_line_chart_without_axis_labels_warns():
    payload = {"type": "line_chart", "title": "Growth", "data": [{"value": 1}, {"value": 2}], "config": {}}

    result = validate(payload, classification(OutputType.LINE_CHART))

    assert result.is_valid
    assert "line_chart should have 'label' or 'category' field for x-axis" in result.warnings


def test_table_requires_rows():
    result = validate({"type": "table", "title": "Lakes", "data": []}, classification(OutputType.TABLE))

    assert "Table visualization requires at least one data point" in result.errors


def test_timeline_requires_labels_and_suggests_dates():
    payload = {"type": "timeline", "title": "Rome", "data": [{"heading": "Founding", "date": "753 BC"}]}

    result = validate(payload, classification(OutputType.TIMELINE))

    assert "Timeline requires 'label' field for event descriptions" in result.errors
    assert "Consider adding date/time information in data points" in result.suggestions


def test_text_without_content_warns():
    result = validate({"type": "text", "title": "Notes", "data": []}, classification(OutputType.TEXT))

    assert result.is_valid
    assert "Text visualization should have either summary or data content" in result.warnings


def test_configuration_checks():
    gauge = {
        "type": "gauge_chart",
        "title": "Utilisation",
        "data": [{"label": "CPU", "value": 70}],
        "config": {"colors": ["red", "#00FF00", "rgb(1,2,3)"], "chartSpecific": {"min": 100, "max": 0}},
    }

    result = validate(gauge, classification(OutputType.GAUGE_CHART))

    assert "Gauge chart: min value must be less than max value" in result.errors
    assert "Invalid color formats detected: red" in result.warnings


def test_gauge_target_outside_range_warns():
    gauge = {
        "type": "gauge_chart",
        "title": "Utilisation",
        "data": [{"label": "CPU", "value": 70}],
        "config": {"chartSpecific": {"min": 0, "max": 100, "gaugeTarget": 150}},
    }

    result = validate(gauge, classification(OutputType.GAUGE_CHART))

    assert "Gauge target value is outside min/max range" in result.warnings


def test_absent_config_is_a_suggestion():
    payload = pie_payload()
    del payload["config"]

    result = validate(payload, classification())

    assert result.is_valid
    assert "Consider adding configuration for better visualization control" in result.suggestions


def test_relative_sublink_route_is_corrected_and_error_kept():
    payload = pie_payload(sublinks=[{"label": "Detail", "route": "dashboard/x", "context": {"type": "detail"}}])

    result = validate(payload, classification())

    assert not result.is_valid
    assert any("Route must start with '/'" in error for error in result.errors)
    assert result.corrected_output["sublinks"][0]["route"] == "/dashboard/x"
    assert payload["sublinks"][0]["route"] == "dashboard/x"
    assert validate(result.corrected_output, classification(), auto_correct=False).is_valid


def test_sublink_integrity_warnings():
    payload = pie_payload(
        sublinks=[
            {"label": "A", "route": "/same", "context": {}},
            {"label": "B", "route": "/same", "context": {"type": "detail"}},
        ]
    )

    result = validate(payload, classification())

    assert "Sublink 1: Context object is empty - consider adding relevant data" in result.warnings
    assert "Duplicate sublink routes detected: /same" in result.warnings


def test_protocol_relative_route_is_rejected():
    payload = pie_payload(sublinks=[{"label": "Evil", "route": "//evil.example", "context": {"a": 1}}])

    assert not validate(payload, classification()).is_valid


def test_citation_integrity():
    payload = pie_payload(
        citations=[
            {"title": "", "url": "https://example.com"},
            {"title": "Bad", "url": "not a url"},
            {"title": "Long", "url": "https://example.com/long", "snippet": "s" * 501},
        ]
    )

    result = validate(payload, classification())

    assert "Citation 1: Title is required" in result.errors
    assert "Citation 2: Invalid URL format" in result.errors
    assert "Citation 3: Snippet is quite long, consider shortening for better UX" in result.warnings


def test_missing_title_is_repaired_from_type():
    payload = pie_payload(title="")

    result = validate(payload, classification())

    assert "Dashboard title is required" in result.errors
    assert result.corrected_output["title"] == "Pie Chart Analysis"


def test_long_title_and_summary_warn():
    result = validate(pie_payload(title="t" * 110, summary="s" * 2001), classification())

    assert result.is_valid
    assert "Dashboard title is quite long, consider shortening for better display" in result.warnings
    assert "Dashboard summary is very long, consider breaking into sections" in result.warnings


def test_unrenderable_type_is_an_error():
    payload = {"type": "sankey_diagram", "title": "Flows", "data": [{"label": "a", "value": 1}]}

    result = validate(payload, classification(OutputType.SANKEY_DIAGRAM))

    assert 'Visualization type "sankey_diagram" is not supported by current frontend' in result.errors


def test_invalid_image_url_is_an_error():
    result = validate(pie_payload(imageUrl="images/chart.png"), classification())

    assert "Invalid image URL format" in result.errors


def test_chart_without_data_fails_schema():
    result = validate({"type": "bar_chart", "title": "Empty", "data": []}, classification(OutputType.BAR_CHART))

    assert any(error.startswith("Schema validation error") for error in result.errors)


def test_parse_error_is_reported():
    result = validate(DraftDocument(parse_error="Structured output could not be parsed: x"), classification())

    assert "Structured output could not be parsed: x" in result.errors
    assert not result.is_valid


def test_auto_correct_only_runs_when_errors_present():
    payload = pie_payload()
    del payload["config"]

    assert validate(payload, classification()).corrected_output is None
    assert validate(pie_payload(title=""), classification(), auto_correct=False).corrected_output is None


def test_auto_correction_is_idempotent():
    payload = pie_payload(
        title="",
        config=None,
        data=[{"value": 1}, {"value": 2}],
        sublinks=[{"label": "x", "route": "a/b", "context": {"k": 1}}],
    )

    once = auto_correct_payload(payload)
    assert once["config"] == {"responsive": True}
    assert auto_correct_payload(once) is None


@pytest.mark.parametrize("route", ["dashboard/x", "/dashboard/x", " dashboard/x "])
def test_normalize_route_is_idempotent(route):
    normalized = normalize_route(route)

    assert normalized == "/dashboard/x"
    assert normalize_route(normalized) == normalized


@pytest.mark.parametrize("bad_type", [["bar_chart"], {"kind": "bar_chart"}, 3])
def test_non_string_type_is_reported_not_raised(bad_type):
    payload = {"type": bad_type, "title": "Sales", "data": [{"value": 4}]}

    result = validate(payload, classification(OutputType.BAR_CHART))

    assert not result.is_valid
    assert any(error.startswith("Schema validation error: type") for error in result.errors)
    assert 'Visualization type "None" is not supported by current frontend' in result.errors
    assert "label" not in result.corrected_output["data"][0]


@pytest.mark.parametrize("value", [float("nan"), float("inf"), float("-inf")])
def test_non_finite_values_are_errors(value):
    result = validate(pie_payload(data=[{"label": "Rent", "value": value}]), classification())

    assert not result.is_valid
    assert "Pie chart requires numeric 'value' field in all data points" in result.errors
    assert "Data point 1: NaN and Infinity cannot be rendered" in result.errors


def test_non_finite_extra_fields_are_errors():
    payload = {"type": "table", "title": "Lakes", "data": [{"name": "Superior", "depth": float("nan")}]}

    result = validate(payload, classification(OutputType.TABLE))

    assert "Data point 1: NaN and Infinity cannot be rendered" in result.errors
