"""Tests for the HTTP surface with a mocked pipeline."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from app.api import app
from conftest import FakeMemory, pie_payload
from dashgen.errors import ConfigurationError, UpstreamServiceError, ValidationError
from dashgen.registry import default_registry
from dashgen.types import DashboardDocument

client = TestClient(app)


@pytest.fixture
def mock_pipeline():
    pipeline = MagicMock()
    pipeline.process = AsyncMock(return_value=DashboardDocument.model_validate(pie_payload()))
    pipeline.follow_sublink.side_effect = default_registry().resolve
    pipeline.memory = None
    with patch("app.api.get_pipeline", return_value=pipeline):
        yield pipeline


def test_health_check():
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_dashboard_returns_wire_document(mock_pipeline):
    response = client.post(
        "/dashboard",
        json={"query": "What did I spend last month?", "useMemory": True, "callerId": "user-42"},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["type"] == "pie_chart"
    assert data["title"] == "Spending by Category"
    assert "imageUrl" not in data
    query = mock_pipeline.process.await_args.args[0]
    assert query.caller_id == "user-42"
    assert query.use_memory is True


def test_dashboard_defaults_to_anonymous_caller(mock_pipeline):
    client.post("/dashboard", json={"query": "Rome"})

    query = mock_pipeline.process.await_args.args[0]
    assert query.caller_id == "anonymous"
    assert query.is_authenticated is False


def test_empty_query_is_rejected_by_request_schema(mock_pipeline):
    response = client.post("/dashboard", json={"query": ""})

    assert response.status_code == 422
    mock_pipeline.process.assert_not_awaited()


def test_validation_failure_maps_to_422(mock_pipeline):
    mock_pipeline.process.side_effect = ValidationError(["Dashboard title is required"])

    response = client.post("/dashboard", json={"query": "Rome"})

    assert response.status_code == 422
    assert response.json() == {"error": "validation_failed", "errors": ["Dashboard title is required"]}


def test_upstream_failure_maps_to_502(mock_pipeline):
    mock_pipeline.process.side_effect = UpstreamServiceError("classifier", "backend call failed")

    response = client.post("/dashboard", json={"query": "Rome"})

    assert response.status_code == 502
    body = response.json()
    assert body["error"] == "upstream_service_error"
    assert "classifier" in body["details"]


def test_configuration_failure_maps_to_500(mock_pipeline):
    mock_pipeline.process.side_effect = ConfigurationError("Missing api_key for summarizer")

    response = client.post("/dashboard", json={"query": "Rome"})

    assert response.status_code == 500
    assert response.json()["error"] == "configuration_error"


def test_resolve_sublink(mock_pipeline):
    response = client.post(
        "/sublinks/resolve",
        json={
            "sublink": {"label": "Spending", "route": "/dashboard/trends", "context": {"type": "trends"}},
            "currentData": [{"label": "May", "value": 10}, {"label": "June", "value": 12}],
        },
    )

    assert response.status_code == 200
    data = response.json()
    assert data["chartType"] == "line_chart"
    assert [point["label"] for point in data["data"]] == ["May", "June"]


def test_resolve_unknown_sublink_is_404(mock_pipeline):
    response = client.post(
        "/sublinks/resolve",
        json={"sublink": {"label": "x", "route": "/dashboard/nowhere", "context": {"type": "nowhere"}}},
    )

    assert response.status_code == 404


def test_recent_memory_disabled_is_404(mock_pipeline):
    response = client.get("/memory/user-42/recent")

    assert response.status_code == 404


def test_recent_memory(mock_pipeline, memory_chunks):
    mock_pipeline.memory = FakeMemory(memory_chunks)

    response = client.get("/memory/user-42/recent", params={"limit": 1})

    assert response.status_code == 200
    assert response.json() == [
        {"text": "Spent $420 on groceries in May", "source": "User Memory (finance)", "relevance": 0.91}
    ]
