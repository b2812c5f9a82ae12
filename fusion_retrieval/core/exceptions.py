"""Exception hierarchy for the fusion retrieval service.

All exceptions are namespaced to avoid shadowing Python builtins
(``TimeoutError``, ``ConnectionError``) and pydantic's ``ValidationError``.

Per-source errors (``SourceUnavailableError``, ``SourceTimeoutError``) are
recovered by the orchestrator and reported in search stats. The remaining
errors reach the API layer and map to HTTP status codes there.
"""

from __future__ import annotations

from typing import Any


class FusionError(Exception):
    """Base exception for all fusion-retrieval errors.

    Attributes:
        message: Human-readable error description.
        cause: Original exception that caused this error (optional).
    """

    def __init__(self, message: str, cause: Exception | None = None) -> None:
        """Initialize fusion error.

        Args:
            message: Human-readable error description.
            cause: Original exception that caused this error.
        """
        self.message = message
        self.cause = cause
        super().__init__(message)
        if cause is not None:
            self.__cause__ = cause


class FusionValidationError(FusionError):
    """Raised when a request or source definition is missing or malformed fields.

    Maps to HTTP 400.
    """

    def __init__(
        self,
        message: str,
        field: str,
        value: Any | None = None,
        errors: list[dict[str, str]] | None = None,
    ) -> None:
        """Initialize validation error.

        Args:
            message: Error description
            field: The field that failed validation
            value: The invalid value
            errors: List of validation errors for multiple fields
        """
        super().__init__(message)
        self.field = field
        self.value = value
        self.errors = errors or []


class SourceNotFoundError(FusionError):
    """Raised when a knowledge source id is not registered.

    Maps to HTTP 404.
    """

    def __init__(self, source_id: str) -> None:
        self.source_id = source_id
        super().__init__(f"Knowledge source '{source_id}' not found")


class SourceError(FusionError):
    """Base class for failures of a single source during a search."""

    def __init__(
        self,
        message: str,
        source_id: str,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, cause)
        self.source_id = source_id


class SourceUnavailableError(SourceError):
    """Raised when a source cannot be reached or answers with an error.

    NOT named ConnectionError to avoid shadowing builtins.ConnectionError.
    """

    def __init__(
        self,
        message: str,
        source_id: str,
        cause: Exception | None = None,
        url: str | None = None,
    ) -> None:
        super().__init__(message, source_id, cause)
        self.url = url


class SourceTimeoutError(SourceError):
    """Raised when a source does not answer within its deadline.

    NOT named TimeoutError to avoid shadowing builtins.TimeoutError.
    """

    def __init__(
        self,
        message: str,
        source_id: str,
        timeout_seconds: float | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, source_id, cause)
        self.timeout_seconds = timeout_seconds


class AggregateFailureError(FusionError):
    """Raised when every resolved source, memory included, failed.

    Attributes:
        failures: Per-source errors keyed by source id.
    """

    def __init__(self, failures: dict[str, Exception]) -> None:
        self.failures = failures
        summary = ", ".join(
            f"{source_id}: {type(error).__name__}"
            for source_id, error in sorted(failures.items())
        )
        super().__init__(f"All {len(failures)} sources failed ({summary})")


class FusionInconsistencyError(FusionError):
    """Raised when a fused score violates an engine invariant.

    Indicates a programming error; never caused by user input.
    """
