"""
Dashboard document generation pipeline.

This package exposes the classifier → retrieve/aggregate → summarize →
validate pipeline along with the document contract and its typed errors.
"""

from .errors import ConfigurationError, DashgenError, UpstreamServiceError, ValidationError
from .pipeline import DashboardPipeline, RunTrace, build_pipeline
from .types import (
    Citation,
    ClassificationResult,
    Complexity,
    ContextChunk,
    DashboardDocument,
    OutputType,
    Query,
    RetrievalContext,
    Sublink,
    ValidationResult,
)
from .validate import validate

__all__ = [
    "Citation",
    "ClassificationResult",
    "Complexity",
    "ConfigurationError",
    "ContextChunk",
    "DashboardDocument",
    "DashboardPipeline",
    "DashgenError",
    "OutputType",
    "Query",
    "RetrievalContext",
    "RunTrace",
    "Sublink",
    "UpstreamServiceError",
    "ValidationError",
    "ValidationResult",
    "build_pipeline",
    "validate",
]
