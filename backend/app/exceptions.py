"""
Exception hierarchy for the cross-framework analysis engine.

Services raise these; ``app.main`` maps them onto HTTP responses.
"""
from typing import Any


class CrossAnalysisError(Exception):
    """Base class for all engine errors.

    Attributes:
        message: Human-readable error description.
        details: Extra context (ids, store names) for logs and API bodies.
    """

    status_code = 500
    error = "internal_error"

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} (details: {self.details})"
        return self.message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(message={self.message!r}, details={self.details!r})"


class NotFound(CrossAnalysisError):
    """A referenced control, requirement, finding, report or query does not exist."""

    status_code = 404
    error = "not_found"


class InvalidRelationship(CrossAnalysisError):
    """A cross-reference that cannot exist (self-reference, out-of-range confidence)."""

    status_code = 400
    error = "invalid_relationship"


class InvalidQuery(CrossAnalysisError):
    """A saved analysis query whose parameters cannot be run."""

    status_code = 400
    error = "invalid_query"


class UpstreamUnavailable(CrossAnalysisError):
    """A backing store (catalog, assessments, qualitative) could not be reached.

    Never retried or swallowed by the engine.
    """

    status_code = 503
    error = "upstream_unavailable"

    def __init__(self, store: str, message: str | None = None, details: dict[str, Any] | None = None) -> None:
        super().__init__(message or f"{store} store is unavailable", {"store": store, **(details or {})})
        self.store = store
