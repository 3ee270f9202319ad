"""Application exceptions and their RFC 7807 handlers.

Client errors (4xx) carry their ``details`` into the problem body; server
errors (5xx) only log them.
"""

from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError

from app.core.logging import get_logger
from app.core.problem_details import (
    ERROR_TYPES,
    ProblemDetailResponse,
    problem_response,
)

logger = get_logger(__name__)


# =============================================================================
# Exception Classes
# =============================================================================


class OrderInsightError(Exception):
    """Base class for errors the API reports as problem documents.

    Subclasses pin ``error_type_uri`` and a stable ``code``; the HTTP status
    travels with the instance.
    """

    error_type_uri: str = ERROR_TYPES["INTERNAL_ERROR"]

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        status_code: int = 500,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize application error.

        Args:
            message: Human-readable error message.
            code: Machine-readable error code.
            status_code: HTTP status code.
            details: Additional error context.
        """
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}

    @property
    def title(self) -> str:
        """Problem title derived from the code (``RANGE_EXCEEDED`` -> ``Range Exceeded``)."""
        return self.code.replace("_", " ").title()

    @property
    def is_client_error(self) -> bool:
        return self.status_code < 500


class BadRequestError(OrderInsightError):
    """Request is well-formed but breaks a business rule (HTTP 400).

    Subclasses pass their own ``code`` to keep each condition distinguishable.
    """

    error_type_uri: str = ERROR_TYPES["BAD_REQUEST"]

    def __init__(
        self,
        message: str = "Bad request",
        code: str = "BAD_REQUEST",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message=message, code=code, status_code=400, details=details)


class DatabaseError(OrderInsightError):
    """The order store could not be read."""

    error_type_uri: str = ERROR_TYPES["DATABASE_ERROR"]

    def __init__(
        self,
        message: str = "Database operation failed",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message=message,
            code="DATABASE_ERROR",
            status_code=500,
            details=details,
        )


# =============================================================================
# Exception Handlers (RFC 7807)
# =============================================================================


async def orderinsight_exception_handler(
    request: Request,
    exc: OrderInsightError,
) -> ProblemDetailResponse:
    """Render an OrderInsightError as a problem document.

    Args:
        request: FastAPI request object.
        exc: The raised exception.

    Returns:
        Problem response with the exception's status and code.
    """
    log = logger.warning if exc.is_client_error else logger.error
    log(
        "app.error_handled",
        error=exc.message,
        error_type=type(exc).__name__,
        error_code=exc.code,
        status_code=exc.status_code,
        path=str(request.url.path),
        details=exc.details,
    )

    return problem_response(
        status=exc.status_code,
        title=exc.title,
        detail=exc.message,
        error_code=exc.code,
        details=exc.details if exc.is_client_error else None,
        type_uri=type(exc).error_type_uri,
    )


async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
) -> ProblemDetailResponse:
    """Render request validation failures as a 422 problem document.

    Field paths drop the ``body``/``query`` prefix, so a missing ``from``
    query parameter is reported as field ``from``.

    Args:
        request: FastAPI request object.
        exc: Pydantic validation error.

    Returns:
        Problem response listing each field error.
    """
    field_errors = [
        {
            "field": ".".join(
                str(part) for part in error.get("loc", ()) if part not in ("body", "query")
            ),
            "message": str(error.get("msg", "Validation failed")),
            "type": str(error.get("type", "unknown")),
        }
        for error in exc.errors()
    ]

    logger.warning(
        "app.validation_error",
        error_count=len(field_errors),
        path=str(request.url.path),
        fields=[e["field"] for e in field_errors],
    )

    return problem_response(
        status=422,
        title="Validation Error",
        detail=f"Request validation failed with {len(field_errors)} error(s).",
        error_code="VALIDATION_ERROR",
        errors=field_errors,
    )


async def unhandled_exception_handler(
    request: Request,
    exc: Exception,
) -> ProblemDetailResponse:
    """Render any other exception as a generic 500 problem document."""
    logger.error(
        "app.unhandled_error",
        error=str(exc),
        error_type=type(exc).__name__,
        path=str(request.url.path),
        exc_info=True,
    )

    return problem_response(
        status=500,
        title="Internal Server Error",
        detail="An unexpected error occurred. Contact support with the request_id.",
        error_code="INTERNAL_ERROR",
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Install the problem-document handlers on the app."""
    app.add_exception_handler(OrderInsightError, orderinsight_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, validation_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, unhandled_exception_handler)
