from __future__ import annotations

import math
from typing import Any, Generic, TypeVar
from uuid import uuid4

from fastapi import HTTPException, Request
from pydantic import BaseModel

from polly.services.results import OperationResult


API_VERSION = "v1"

T = TypeVar("T")

# Fallback codes for failures that carry only an HTTP status.
STATUS_CODES: dict[int, str] = {
    400: "BAD_REQUEST",
    401: "LOGIN_REQUIRED",
    403: "NOT_PERMITTED",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    422: "VALIDATION_ERROR",
    429: "RATE_LIMITED",
    500: "INTERNAL_ERROR",
    503: "STORAGE_UNAVAILABLE",
}


class ResponseMeta(BaseModel):
    request_id: str
    api_version: str = API_VERSION


class ErrorDetail(BaseModel):
    code: str
    message: str
    details: dict[str, Any] | None = None


class SuccessEnvelope(BaseModel, Generic[T]):
    data: T
    meta: ResponseMeta


class ErrorEnvelope(BaseModel):
    error: ErrorDetail
    meta: ResponseMeta


def status_code_name(status_code: int) -> str:
    return STATUS_CODES.get(status_code, "UNKNOWN_ERROR")


def retry_after_seconds(retry_after_ms: int) -> int:
    # Retry-After is whole seconds; never advertise zero for a rejection.
    return max(int(math.ceil(retry_after_ms / 1000.0)), 1)


def _meta(request: Request) -> dict[str, Any]:
    # The request middleware assigns ids; handlers reached outside it get a fresh one.
    request_id = getattr(request.state, "request_id", None)
    if not request_id:
        request_id = str(uuid4())
        request.state.request_id = request_id
    return ResponseMeta(request_id=request_id).model_dump()


def success_response(*, request: Request, data: Any) -> dict[str, Any]:
    if isinstance(data, BaseModel):
        data = data.model_dump()
    return {"data": data, "meta": _meta(request)}


def error_response(
    *,
    request: Request,
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    error = ErrorDetail(code=code, message=message, details=details)
    return {"error": error.model_dump(exclude_none=True), "meta": _meta(request)}


def result_exception(result: OperationResult) -> HTTPException:
    """Turn a failed service result into an ``HTTPException``.

    The result's stable code and user-safe message become the error body.
    Throttled votes advertise ``Retry-After`` and login-required failures
    advertise a bearer challenge.
    """
    headers: dict[str, str] | None = None
    if result.status_code == 429 and result.retry_after_ms:
        headers = {"Retry-After": str(retry_after_seconds(result.retry_after_ms))}
    elif result.status_code == 401:
        headers = {"WWW-Authenticate": "Bearer"}
    return HTTPException(
        status_code=result.status_code,
        detail={"code": result.code or status_code_name(result.status_code), "message": result.error},
        headers=headers,
    )


def result_response(request: Request, result: OperationResult) -> dict[str, Any]:
    # Success envelope for ok results; failures are raised for the HTTP exception handler.
    if not result.ok:
        raise result_exception(result)
    return success_response(request=request, data=result.data)
