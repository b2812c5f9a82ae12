"""Error handlers for API routes.

Maps the service exception hierarchy onto a consistent ``ErrorResponse``
body:

- FusionValidationError, request-model validation -> 400
- SourceNotFoundError                              -> 404
- AggregateFailureError                            -> 500
- any other FusionError or unhandled exception     -> 500
"""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

from fusion_retrieval.core.exceptions import (
    AggregateFailureError,
    FusionError,
    FusionValidationError,
    SourceNotFoundError,
)
from fusion_retrieval.core.logging import get_logger


logger = get_logger(__name__)


# =============================================================================
# Error Response Model
# =============================================================================

class ErrorResponse(BaseModel):
    """Standard error response model.

    Attributes:
        error: Error type/category
        detail: Human-readable error description
        code: Optional machine-readable error code
        path: Optional request path that caused the error
        errors: Per-field validation errors, if any
    """

    error: str = Field(..., description="Error type or category")
    detail: str = Field(..., description="Human-readable error description")
    code: str | None = Field(default=None, description="Machine-readable error code")
    path: str | None = Field(default=None, description="Request path that caused the error")
    errors: list[dict[str, str]] = Field(default_factory=list, description="Field errors")


def _error(
    request: Request,
    status_code: int,
    error: str,
    detail: str,
    code: str,
    errors: list[dict[str, str]] | None = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(
            error=error,
            detail=detail,
            code=code,
            path=str(request.url.path),
            errors=errors or [],
        ).model_dump(),
    )


# =============================================================================
# Exception Handlers
# =============================================================================

async def http_exception_handler(
    request: Request,
    exc: StarletteHTTPException,
) -> JSONResponse:
    """Handle HTTPException with ErrorResponse schema."""
    error_type = {
        400: "BadRequest",
        404: "NotFound",
        405: "MethodNotAllowed",
        500: "InternalServerError",
        503: "ServiceUnavailable",
    }.get(exc.status_code, "Error")
    return _error(request, exc.status_code, error_type, str(exc.detail), f"HTTP_{exc.status_code}")


async def request_validation_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    """Handle malformed request bodies as 400 validation errors.

    Args:
        request: FastAPI request object
        exc: RequestValidationError raised

    Returns:
        JSONResponse with ErrorResponse format and field details
    """
    field_errors = [
        {
            # Drop the leading "body"/"query" segment of the location
            "field": ".".join(str(part) for part in error.get("loc", [])[1:]) or "body",
            "message": error.get("msg", "Invalid value"),
        }
        for error in exc.errors()
    ]
    detail = "; ".join(f"{err['field']}: {err['message']}" for err in field_errors) or "Validation error"
    return _error(request, 400, "ValidationError", detail, "VALIDATION_ERROR", field_errors)


async def fusion_validation_handler(
    request: Request,
    exc: FusionValidationError,
) -> JSONResponse:
    """Handle FusionValidationError.

    Returns:
        JSONResponse with 400 status
    """
    errors = exc.errors or [{"field": exc.field, "message": exc.message}]
    return _error(request, 400, "ValidationError", exc.message, "VALIDATION_ERROR", errors)


async def source_not_found_handler(
    request: Request,
    exc: SourceNotFoundError,
) -> JSONResponse:
    """Handle SourceNotFoundError.

    Returns:
        JSONResponse with 404 status
    """
    return _error(request, 404, "NotFound", exc.message, "SOURCE_NOT_FOUND")


async def aggregate_failure_handler(
    request: Request,
    exc: AggregateFailureError,
) -> JSONResponse:
    """Handle AggregateFailureError.

    Returns:
        JSONResponse with 500 status
    """
    logger.error("Every source failed", path=str(request.url.path), sources=sorted(exc.failures))
    return _error(request, 500, "AggregateFailure", exc.message, "AGGREGATE_FAILURE")


async def fusion_error_handler(
    request: Request,
    exc: FusionError,
) -> JSONResponse:
    """Handle any other FusionError (internal invariant violations)."""
    logger.error(
        "Fusion error",
        path=str(request.url.path),
        error_type=type(exc).__name__,
        error=exc.message,
    )
    return _error(request, 500, "InternalServerError", "An internal error occurred", "INTERNAL_ERROR")


async def generic_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """Handle uncaught exceptions.

    Args:
        request: FastAPI request object
        exc: Exception raised

    Returns:
        JSONResponse with 500 status
    """
    logger.exception(
        "Unhandled exception",
        path=str(request.url.path),
        error_type=type(exc).__name__,
    )
    return _error(request, 500, "InternalServerError", "An unexpected error occurred", "INTERNAL_ERROR")


# =============================================================================
# Registration Function
# =============================================================================

def register_error_handlers(app: FastAPI) -> None:
    """Register all error handlers with the FastAPI app.

    Args:
        app: FastAPI application instance
    """
    app.add_exception_handler(
        StarletteHTTPException,
        http_exception_handler,  # type: ignore[arg-type]
    )
    app.add_exception_handler(
        RequestValidationError,
        request_validation_handler,  # type: ignore[arg-type]
    )
    app.add_exception_handler(
        FusionValidationError,
        fusion_validation_handler,  # type: ignore[arg-type]
    )
    app.add_exception_handler(
        SourceNotFoundError,
        source_not_found_handler,  # type: ignore[arg-type]
    )
    app.add_exception_handler(
        AggregateFailureError,
        aggregate_failure_handler,  # type: ignore[arg-type]
    )
    app.add_exception_handler(
        FusionError,
        fusion_error_handler,  # type: ignore[arg-type]
    )
    app.add_exception_handler(
        Exception,
        generic_exception_handler,
    )


__all__ = [
    "ErrorResponse",
    "register_error_handlers",
]
