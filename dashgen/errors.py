from __future__ import annotations

from typing import List, Optional, Sequence


class DashgenError(Exception):
    """Base class for pipeline failures surfaced to callers."""

    code = "dashgen_error"


class ConfigurationError(DashgenError):
    """Missing credentials or configuration. Static, never retried."""

    code = "configuration_error"


class UpstreamServiceError(DashgenError):
    """A backend call failed or returned unusable content."""

    code = "upstream_service_error"

    def __init__(self, service: str, message: str):
        super().__init__(f"{service}: {message}")
        self.service = service
        self.message = message


class ValidationError(DashgenError):
    """The drafted document violates the contract and could not be repaired."""

    code = "validation_failed"

    def __init__(self, errors: Sequence[str], warnings: Optional[Sequence[str]] = None):
        self.errors: List[str] = list(errors)
        self.warnings: List[str] = list(warnings or [])
        super().__init__(f"{len(self.errors)} validation error(s): " + "; ".join(self.errors[:3]))
