from __future__ import annotations

from typing import Any

from polly.apps.api.response import ErrorEnvelope


def _error_example(*, code: str, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    # Build a consistent error envelope example for OpenAPI docs.
    payload: dict[str, Any] = {
        "error": {"code": code, "message": message},
        "meta": {"request_id": "req_example", "api_version": "v1"},
    }
    if details:
        payload["error"]["details"] = details
    return payload


def _response(description: str, *, code: str, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    return {
        "model": ErrorEnvelope,
        "description": description,
        "content": {
            "application/json": {
                "example": _error_example(code=code, message=message, details=details),
            }
        },
    }


DEFAULT_ERROR_RESPONSES: dict[int, dict[str, Any]] = {
    401: _response("Login required", code="LOGIN_REQUIRED", message="Please log in to continue"),
    403: _response("Not permitted", code="NOT_PERMITTED", message="Not permitted"),
    404: _response("Not found", code="POLL_NOT_FOUND", message="Poll not found"),
    409: _response(
        "Conflict", code="ALREADY_VOTED", message="You have already voted on this poll"
    ),
    422: _response(
        "Validation error", code="VALIDATION_ERROR", message="Question must be 500 characters or less"
    ),
    429: _response(
        "Rate limited",
        code="RATE_LIMITED",
        message="Too many requests. Please wait a moment.",
        details={"retry_after_ms": 300000},
    ),
    503: _response(
        "Storage unavailable",
        code="STORAGE_UNAVAILABLE",
        message="Something went wrong. Please try again.",
    ),
}
