"""Pytest configuration and shared fakes."""

import json
import os
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
os.environ.setdefault("DASHGEN_CONFIG", str(PROJECT_ROOT / "configs" / "app.yaml"))

from dashgen.errors import ConfigurationError
from dashgen.llm import LLMMessage, LLMResponse
from dashgen.types import Citation, ClassificationResult, ContextChunk, OutputType


class ScriptedLLM:
    """LLM client that replays canned responses and records every call."""

    def __init__(self, name: str = "scripted", content: Any = "", citations=None, error: Optional[Exception] = None):
        self.name = name
        self.content = content if isinstance(content, str) else json.dumps(content)
        self.citations: List[Citation] = list(citations or [])
        self.error = error
        self.calls: List[Dict[str, Any]] = []

    async def generate(self, messages: Iterable[LLMMessage], **kwargs: Any) -> LLMResponse:
        self.calls.append({"messages": list(messages), "kwargs": kwargs})
        if self.error is not None:
            raise self.error
        return LLMResponse(content=self.content, usage={}, citations=self.citations)


class FakeFactory:
    """Stands in for LLMClientFactory; unknown sections are unconfigured."""

    def __init__(self, clients: Optional[Dict[str, Any]] = None, providers: Optional[Dict[str, str]] = None):
        self.clients = dict(clients or {})
        self.providers = dict(providers or {})

    def build(self, section: str):
        if section not in self.clients:
            raise ConfigurationError(f"Missing api_key for {section} LLM configuration.")
        return self.clients[section]

    def provider(self, section: str) -> Optional[str]:
        return self.providers.get(section)


class FakeMemory:
    def __init__(self, chunks: Optional[List[ContextChunk]] = None, error: Optional[Exception] = None):
        self.chunks = list(chunks or [])
        self.error = error
        self.search_calls: List[Dict[str, Any]] = []

    async def search(self, caller_id: str, query_text: str, top_k: int, min_similarity: float):
        self.search_calls.append(
            {"caller_id": caller_id, "query_text": query_text, "top_k": top_k, "min_similarity": min_similarity}
        )
        if self.error is not None:
            raise self.error
        return list(self.chunks)

    async def recent(self, caller_id: str, limit: int):
        return list(self.chunks)[:limit]


class RecordingQueryLog:
    def __init__(self, error: Optional[Exception] = None):
        self.entries = []
        self.error = error

    def log(self, entry) -> None:
        if self.error is not None:
            raise self.error
        self.entries.append(entry)


def classification(output_type: OutputType = OutputType.PIE_CHART, **flags: bool) -> ClassificationResult:
    return ClassificationResult(output_type=output_type, **flags)


def pie_payload(**overrides: Any) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "type": "pie_chart",
        "title": "Spending by Category",
        "data": [
            {"label": "Groceries", "value": 420},
            {"label": "Rent", "value": 1500},
            {"label": "Transport", "value": 180.5},
        ],
        "config": {"legend": True, "colors": ["#FF6384", "#36A2EB", "#FFCE56"]},
        "sublinks": [{"label": "Trends", "route": "/dashboard/trends", "context": {"type": "trends"}}],
        "summary": "Rent dominates monthly spending.",
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def memory_chunks() -> List[ContextChunk]:
    return [
        ContextChunk(text="Spent $420 on groceries in May", source="User Memory (finance)", relevance=0.91),
        ContextChunk(text="Rent is $1500 per month", source="User Memory (finance)", relevance=0.84),
    ]
