"""RFC 7807 Problem Details for HTTP APIs.

Every error leaving the service is rendered as ``application/problem+json``
with a stable machine-readable ``code`` so that clients can branch on it
without parsing the human message. Analytics query errors also echo the
rejected window under ``details``.

Reference: https://datatracker.ietf.org/doc/html/rfc7807
"""

from typing import Any

from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from app.core.logging import request_id_ctx

ERROR_TYPE_BASE = "/errors"

# code -> problem type URI (relative, resolved against the API host)
ERROR_TYPES: dict[str, str] = {
    "NOT_FOUND": f"{ERROR_TYPE_BASE}/not-found",
    "VALIDATION_ERROR": f"{ERROR_TYPE_BASE}/validation",
    "BAD_REQUEST": f"{ERROR_TYPE_BASE}/bad-request",
    "RANGE_EXCEEDED": f"{ERROR_TYPE_BASE}/analytics/range-exceeded",
    "FUTURE_DATE_NOT_ALLOWED": f"{ERROR_TYPE_BASE}/analytics/future-date",
    "INVALID_DATE_RANGE": f"{ERROR_TYPE_BASE}/analytics/invalid-date-range",
    "DATABASE_ERROR": f"{ERROR_TYPE_BASE}/database",
    "INTERNAL_ERROR": f"{ERROR_TYPE_BASE}/internal",
}


def type_uri_for(code: str) -> str:
    """Resolve the problem type URI for an error code."""
    return ERROR_TYPES.get(code, f"{ERROR_TYPE_BASE}/{code.lower().replace('_', '-')}")


class ProblemDetail(BaseModel):
    """Problem document body.

    Standard members are ``type``, ``title``, ``status``, ``detail`` and
    ``instance``. Extensions: ``code``, ``request_id``, ``errors`` (422 only)
    and ``details`` (error-specific context).
    """

    model_config = ConfigDict(extra="allow")

    type: str = Field(default="about:blank", description="Problem type URI.")
    title: str = Field(..., description="Short summary of the problem type.")
    status: int = Field(..., ge=400, le=599, description="HTTP status code.")
    detail: str | None = Field(None, description="Explanation of this occurrence.")
    instance: str | None = Field(None, description="URI of this occurrence.")

    code: str | None = Field(
        None,
        description="Stable machine-readable error code (e.g. RANGE_EXCEEDED).",
    )
    request_id: str | None = Field(
        None,
        description="Request correlation ID. Include in support requests.",
    )
    errors: list[dict[str, Any]] | None = Field(
        None,
        description="Field-level validation errors.",
    )
    details: dict[str, Any] | None = Field(
        None,
        description="Error-specific context, e.g. the rejected date window.",
    )


class ProblemDetailResponse(JSONResponse):
    """JSON response served as application/problem+json."""

    media_type = "application/problem+json"


def create_problem_detail(
    status: int,
    title: str,
    detail: str | None = None,
    error_code: str = "INTERNAL_ERROR",
    errors: list[dict[str, Any]] | None = None,
    details: dict[str, Any] | None = None,
    type_uri: str | None = None,
) -> ProblemDetail:
    """Build a problem document for the current request.

    Args:
        status: HTTP status code.
        title: Short problem summary.
        detail: Occurrence-specific explanation.
        error_code: Stable error code; also selects the type URI.
        errors: Field-level validation errors.
        details: Error-specific context (omitted when empty).
        type_uri: Explicit type URI overriding the code lookup.

    Returns:
        Problem document tagged with the request correlation ID.
    """
    request_id = request_id_ctx.get()

    return ProblemDetail(
        type=type_uri or type_uri_for(error_code),
        title=title,
        status=status,
        detail=detail,
        instance=f"/requests/{request_id}" if request_id else None,
        code=error_code,
        request_id=request_id,
        errors=errors,
        details=details or None,
    )


def problem_response(
    status: int,
    title: str,
    detail: str | None = None,
    error_code: str = "INTERNAL_ERROR",
    errors: list[dict[str, Any]] | None = None,
    details: dict[str, Any] | None = None,
    type_uri: str | None = None,
) -> ProblemDetailResponse:
    """Render a problem document as an HTTP response.

    Unset optional members are left out of the body.
    """
    problem = create_problem_detail(
        status=status,
        title=title,
        detail=detail,
        error_code=error_code,
        errors=errors,
        details=details,
        type_uri=type_uri,
    )
    return ProblemDetailResponse(
        status_code=status,
        content=problem.model_dump(mode="json", exclude_none=True),
    )
