"""Tests for concurrent generation-source aggregation."""

import asyncio

import pytest

from conftest import FakeFactory, ScriptedLLM, classification
from dashgen.errors import UpstreamServiceError
from dashgen.sources import (
    AUXILIARY,
    BROAD_KNOWLEDGE,
    FALLBACK_CONTENT,
    RESEARCH_CURRENT,
    SECTION_SEPARATOR,
    GenerationSource,
    SourceAggregator,
)
from dashgen.types import Citation, GenerationContribution, OutputType, Query

QUERY = Query(text="History of the Roman Empire")


def _source(name, llm, header=None, **kwargs):
    return GenerationSource(
        name=name,
        client=llm,
        header=header or name.title(),
        instructions="Explain.",
        **kwargs,
    )


class SlowLLM(ScriptedLLM):
    async def generate(self, messages, **kwargs):
        await asyncio.sleep(5)
        return await super().generate(messages, **kwargs)


@pytest.mark.asyncio
async def test_all_sources_failing_yields_fallback_text():
    aggregator = SourceAggregator(
        [
            _source(BROAD_KNOWLEDGE, ScriptedLLM(error=UpstreamServiceError("openai", "500"))),
            _source(RESEARCH_CURRENT, ScriptedLLM(error=RuntimeError("boom"))),
            _source(AUXILIARY, SlowLLM(content="x" * 100)),
        ],
        branch_timeout=0.05,
    )

    contributions = await aggregator.aggregate(QUERY, classification(OutputType.TEXT))

    assert len(contributions) == 1
    assert contributions[0].content == FALLBACK_CONTENT
    merged = SourceAggregator.merge(contributions)
    assert merged.fallback is True
    assert merged.content == FALLBACK_CONTENT


@pytest.mark.asyncio
async def test_partial_failure_keeps_successful_sources_and_error_text():
    aggregator = SourceAggregator(
        [
            _source(BROAD_KNOWLEDGE, ScriptedLLM(error=RuntimeError("quota exceeded"))),
            _source(RESEARCH_CURRENT, ScriptedLLM(content="Rome was founded in 753 BC.")),
        ],
        branch_timeout=1.0,
    )

    contributions = await aggregator.aggregate(QUERY, classification(OutputType.TIMELINE))

    by_source = {item.source: item for item in contributions}
    assert by_source[RESEARCH_CURRENT].content == "Rome was founded in 753 BC."
    assert by_source[BROAD_KNOWLEDGE].content == ""
    assert "quota exceeded" in by_source[BROAD_KNOWLEDGE].error


@pytest.mark.asyncio
async def test_short_auxiliary_content_is_discarded():
    aggregator = SourceAggregator(
        [_source(AUXILIARY, ScriptedLLM(content="Too short."), min_content_length=50)],
        branch_timeout=1.0,
    )

    contributions = await aggregator.aggregate(QUERY, classification(OutputType.TEXT))

    assert [item.content for item in contributions] == [FALLBACK_CONTENT]


@pytest.mark.asyncio
async def test_output_type_filter_controls_eligibility():
    research = ScriptedLLM(content="Current figures.")
    aggregator = SourceAggregator(
        [_source(RESEARCH_CURRENT, research, output_types=[OutputType.LINE_CHART])],
        branch_timeout=1.0,
    )

    assert aggregator.eligible_sources(classification(OutputType.PIE_CHART)) == []
    contributions = await aggregator.aggregate(QUERY, classification(OutputType.PIE_CHART))

    assert contributions[0].content == FALLBACK_CONTENT
    assert research.calls == []


def test_merge_orders_by_priority_and_dedupes_citations():
    shared = Citation(title="Britannica", url="https://www.britannica.com/place/Roman-Empire")
    merged = SourceAggregator.merge(
        [
            GenerationContribution(source=AUXILIARY, header="Additional Insights", content="Aux."),
            GenerationContribution(
                source=RESEARCH_CURRENT,
                header="Research & Current Information",
                content="Research.",
                citations=[shared, Citation(title="Wiki", url="https://en.wikipedia.org/wiki/Roman_Empire")],
            ),
            GenerationContribution(
                source=BROAD_KNOWLEDGE,
                header="Comprehensive Overview",
                content="Overview.",
                citations=[shared],
            ),
            GenerationContribution(source="failed", header="Broken", error="timeout"),
        ]
    )

    assert merged.fallback is False
    assert merged.sources == [BROAD_KNOWLEDGE, RESEARCH_CURRENT, AUXILIARY]
    assert merged.content == SECTION_SEPARATOR.join(
        [
            "# Comprehensive Overview\n\nOverview.",
            "# Research & Current Information\n\nResearch.",
            "# Additional Insights\n\nAux.",
        ]
    )
    assert [citation.url for citation in merged.citations] == [
        "https://www.britannica.com/place/Roman-Empire",
        "https://en.wikipedia.org/wiki/Roman_Empire",
    ]


def test_from_config_skips_disabled_and_unconfigured_sources():
    factory = FakeFactory({BROAD_KNOWLEDGE: ScriptedLLM(), AUXILIARY: ScriptedLLM()})
    aggregator = SourceAggregator.from_config(
        factory,
        {
            BROAD_KNOWLEDGE: {"enabled": True, "provider": "openai"},
            RESEARCH_CURRENT: {"enabled": True, "provider": "perplexity"},
            AUXILIARY: {"enabled": False, "provider": "gemini"},
        },
    )

    assert [source.name for source in aggregator.sources] == [BROAD_KNOWLEDGE]
    assert aggregator.sources[0].header == "Comprehensive Overview"


def test_from_config_defaults_auxiliary_minimum_length():
    factory = FakeFactory({AUXILIARY: ScriptedLLM()})
    aggregator = SourceAggregator.from_config(factory, {AUXILIARY: {"provider": "gemini"}})

    assert aggregator.sources[0].min_content_length == 50
    assert aggregator.sources[0].header == "Additional Insights"
