from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .classifier import Classifier, ClassifierConfig, KeywordClassifier, QueryClassifier
from .config import branch_timeout, load_app_config, memory_feature_enabled, section
from .errors import ConfigurationError, ValidationError
from .fanout import gather_settled
from .llm import LLMClientFactory
from .memory import HttpMemoryStore, MemoryStore
from .querylog import NullQueryLog, QueryLog, SqliteQueryLog
from .registry import RouteResult, SublinkRegistry, default_registry
from .retriever import Retriever, RetrieverConfig
from .search import BraveSearchProvider, ExternalResearch
from .sources import SourceAggregator, fallback_contribution
from .summarizer import Summarizer, SummarizerConfig
from .types import (
    ANONYMOUS_CALLER,
    ClassificationResult,
    DashboardDocument,
    DraftDocument,
    GenerationContribution,
    PipelineState,
    Query,
    QueryLogEntry,
    RetrievalContext,
    Sublink,
    ValidationResult,
)
from .validate import validate

logger = logging.getLogger(__name__)

RETRIEVAL_BRANCH = "retrieval"
GENERATION_BRANCH = "generation"


@dataclass
class RunTrace:
    """Per-request record of the states visited and how long each phase took."""

    run_id: str
    query: Query
    states: List[PipelineState] = field(default_factory=lambda: [PipelineState.STARTED])
    timings: Dict[str, float] = field(default_factory=dict)
    classification: Optional[ClassificationResult] = None
    validation: Optional[ValidationResult] = None
    corrected: bool = False
    memory_engaged: bool = False
    sources_used: List[str] = field(default_factory=list)

    @property
    def state(self) -> PipelineState:
        return self.states[-1]

    def advance(self, state: PipelineState, phase: str, started: float) -> None:
        self.timings[phase] = round(time.monotonic() - started, 3)
        self.states.append(state)
        logger.info("[%s] %s in %.2fs", self.run_id[:8], state.value, self.timings[phase])


class DashboardPipeline:
    """Classify, gather context, draft, validate, deliver."""

    def __init__(
        self,
        classifier: QueryClassifier,
        aggregator: SourceAggregator,
        retriever: Retriever,
        summarizer: Summarizer,
        query_log: Optional[QueryLog] = None,
        registry: Optional[SublinkRegistry] = None,
        memory_enabled: bool = False,
        memory: Optional[MemoryStore] = None,
    ) -> None:
        self.classifier = classifier
        self.aggregator = aggregator
        self.retriever = retriever
        self.summarizer = summarizer
        self.query_log: QueryLog = query_log or NullQueryLog()
        self.registry = registry or default_registry()
        self.memory_enabled = memory_enabled
        self.memory = memory

    async def process(self, query: Query) -> DashboardDocument:
        document, _ = await self.run(query)
        return document

    async def process_text(
        self,
        text: str,
        user_id: str = ANONYMOUS_CALLER,
        use_memory: bool = False,
    ) -> DashboardDocument:
        return await self.process(Query(text=text, caller_id=user_id, use_memory=use_memory))

    async def run(self, query: Query) -> Tuple[DashboardDocument, RunTrace]:
        trace = RunTrace(run_id=str(uuid.uuid4()), query=query)
        logger.info("[%s] Processing query for %s: %s", trace.run_id[:8], query.caller_id, query.text)

        started = time.monotonic()
        classification = await self.classifier.classify(query)
        classification = self._gate_memory(query, classification, trace)
        trace.classification = classification
        trace.advance(PipelineState.CLASSIFIED, "classify", started)

        started = time.monotonic()
        context, contributions = await self._gather_context(query, classification)
        merged = SourceAggregator.merge(contributions)
        trace.sources_used = merged.sources
        trace.advance(PipelineState.CONTEXT_GATHERED, "gather", started)

        started = time.monotonic()
        draft = await self.summarizer.summarize(query, classification, context, merged)
        trace.advance(PipelineState.DRAFTED, "summarize", started)

        started = time.monotonic()
        try:
            document = self._accept(draft, classification, trace)
        except ValidationError:
            trace.advance(PipelineState.REJECTED, "validate", started)
            raise
        trace.advance(PipelineState.VALIDATED, "validate", started)

        await self._audit(query, document)
        trace.states.append(PipelineState.DELIVERED)
        logger.info(
            "[%s] Delivered %s '%s' (%s points, corrected=%s)",
            trace.run_id[:8],
            document.type.value,
            document.title,
            len(document.data),
            trace.corrected,
        )
        return document, trace

    def _gate_memory(
        self,
        query: Query,
        classification: ClassificationResult,
        trace: RunTrace,
    ) -> ClassificationResult:
        engaged = query.is_authenticated and query.use_memory and self.memory_enabled
        if classification.needs_personal_context and not engaged:
            logger.info(
                "Personal context disabled (authenticated=%s use_memory=%s feature=%s)",
                query.is_authenticated,
                query.use_memory,
                self.memory_enabled,
            )
            return classification.model_copy(update={"needs_personal_context": False})
        trace.memory_engaged = engaged and classification.needs_personal_context
        return classification

    async def _gather_context(
        self,
        query: Query,
        classification: ClassificationResult,
    ) -> Tuple[RetrievalContext, List[GenerationContribution]]:
        branches: Dict[str, Any] = {}
        if classification.needs_retrieval:
            branches[RETRIEVAL_BRANCH] = self.retriever.retrieve(query, query.caller_id, classification)
        if self.aggregator.eligible_sources(classification):
            branches[GENERATION_BRANCH] = self.aggregator.aggregate(query, classification)

        # branches carry their own per-call timeouts
        outcomes = await gather_settled(branches)

        context = RetrievalContext()
        retrieval = outcomes.get(RETRIEVAL_BRANCH)
        if retrieval is not None:
            if retrieval.ok and retrieval.value is not None:
                context = retrieval.value
            else:
                logger.warning("Retrieval contributed nothing: %s", retrieval.describe_error())

        contributions = [fallback_contribution()]
        generation = outcomes.get(GENERATION_BRANCH)
        if generation is not None:
            if generation.ok and generation.value:
                contributions = generation.value
            else:
                logger.warning("Source aggregation contributed nothing: %s", generation.describe_error())
        return context, contributions

    def _accept(
        self,
        draft: DraftDocument,
        classification: ClassificationResult,
        trace: RunTrace,
    ) -> DashboardDocument:
        result = validate(draft, classification, auto_correct=True)
        trace.validation = result
        if result.is_valid:
            return DashboardDocument.model_validate(draft.payload)

        if result.corrected_output is None:
            raise ValidationError(result.errors, result.warnings)

        recheck = validate(result.corrected_output, classification, auto_correct=False)
        if not recheck.is_valid:
            remaining = [error for error in recheck.errors if error not in result.errors]
            raise ValidationError(result.errors + remaining, result.warnings)

        logger.info(
            "[%s] Auto-correction repaired %s error(s): %s",
            trace.run_id[:8],
            len(result.errors),
            "; ".join(result.errors),
        )
        trace.corrected = True
        return DashboardDocument.model_validate(result.corrected_output)

    async def _audit(self, query: Query, document: DashboardDocument) -> None:
        entry = QueryLogEntry(
            user_id=query.caller_id,
            query=query.text,
            response_type=document.type.value,
            title=document.title,
        )
        try:
            await asyncio.to_thread(self.query_log.log, entry)
        except Exception:
            logger.exception("Failed to write query log entry for %s", query.caller_id)

    def follow_sublink(self, sublink: Sublink, current_data: Optional[Sequence[Any]] = None) -> RouteResult:
        return self.registry.resolve(sublink, current_data)


def _build_classifier(llm_factory: LLMClientFactory) -> QueryClassifier:
    if llm_factory.provider("classifier") == "keywords":
        logger.info("Using keyword classifier.")
        return KeywordClassifier()
    return Classifier(ClassifierConfig(), llm_factory=llm_factory)


def _build_research(config: Dict[str, Any]) -> Optional[ExternalResearch]:
    search_cfg = section(config, "search")
    provider_name = search_cfg.get("provider", "brave")
    if provider_name in (None, "", "none"):
        return None
    if provider_name != "brave":
        raise ConfigurationError(f"Unsupported search provider: {provider_name}")
    brave_cfg = section(search_cfg, "brave")
    if not brave_cfg.get("api_key"):
        logger.warning("Brave search api_key missing; external research disabled.")
        return None
    provider = BraveSearchProvider(
        api_key=brave_cfg["api_key"],
        endpoint=brave_cfg.get("endpoint", "https://api.search.brave.com/res/v1/web/search"),
        timeout=float(section(config, "limits").get("request_timeout_seconds", 20)),
        freshness_days=brave_cfg.get("freshness_days"),
    )
    return ExternalResearch(provider, top_k=int(search_cfg.get("top_k", 5)))


def _build_memory(config: Dict[str, Any]) -> Optional[MemoryStore]:
    if not memory_feature_enabled(config):
        return None
    memory_cfg = section(config, "memory")
    return HttpMemoryStore(
        endpoint=memory_cfg["endpoint"],
        api_key=memory_cfg.get("api_key") or None,
        timeout=float(section(config, "limits").get("request_timeout_seconds", 20)),
    )


def _build_query_log(config: Dict[str, Any]) -> QueryLog:
    log_cfg = section(config, "query_log")
    provider = log_cfg.get("provider", "none")
    if provider == "sqlite":
        return SqliteQueryLog(path=log_cfg.get("path", "query_log.db"))
    if provider in ("none", "", None):
        return NullQueryLog()
    raise ConfigurationError(f"Unsupported query log provider: {provider}")


def build_pipeline(config: Optional[Dict[str, Any]] = None) -> DashboardPipeline:
    """Wire every collaborator from configuration."""

    config = config if config is not None else load_app_config()
    timeout = branch_timeout(config)
    llm_timeout = float(section(config, "limits").get("llm_timeout_seconds", 40))
    models = LLMClientFactory(section(config, "models"), timeout=llm_timeout)
    sources_cfg = section(config, "sources")
    source_clients = LLMClientFactory(sources_cfg, timeout=llm_timeout)

    memory = _build_memory(config)
    memory_cfg = section(config, "memory")
    retriever = Retriever(
        RetrieverConfig(
            top_k=int(memory_cfg.get("top_k", 5)),
            min_similarity=float(memory_cfg.get("min_similarity", 0.7)),
            annotate_for_type=bool(section(config, "retrieval").get("annotate_for_type", False)),
        ),
        memory=memory,
        research=_build_research(config),
        branch_timeout=timeout,
    )
    return DashboardPipeline(
        classifier=_build_classifier(models),
        aggregator=SourceAggregator.from_config(source_clients, sources_cfg, branch_timeout=timeout),
        retriever=retriever,
        summarizer=Summarizer(SummarizerConfig(), llm_factory=models),
        query_log=_build_query_log(config),
        registry=default_registry(),
        memory_enabled=memory is not None,
        memory=memory,
    )
