from __future__ import annotations

import logging

from fastapi import Request, status
from fastapi.responses import JSONResponse

from polly.apps.api.response import error_response
from polly.services.audit import ACTION_RATE_LIMITED, get_request_context
from polly.services.rate_limit import RateLimitDecision, client_key
from polly.services.registry import Services


logger = logging.getLogger(__name__)


def client_ip(request: Request) -> str | None:
    # Prefer the first proxy hop when the app runs behind a forwarding proxy.
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop
    return request.client.host if request.client else None


def client_key_for_request(request: Request) -> str:
    return client_key(client_ip(request), request.headers.get("user-agent"))


def _rate_limit_headers(decision: RateLimitDecision) -> dict[str, str]:
    return {
        "X-RateLimit-Limit": str(decision.limit),
        "X-RateLimit-Remaining": str(decision.remaining),
        "X-RateLimit-Reset": str(decision.reset_at_ms),
    }


def _throttle_response(request: Request, decision: RateLimitDecision) -> JSONResponse:
    # Construct a stable 429 response with retry hints.
    headers = _rate_limit_headers(decision)
    headers["Retry-After"] = str(decision.retry_after_s)
    payload = error_response(
        request=request,
        code="RATE_LIMITED",
        message="Too many requests. Please wait a moment.",
        details={"retry_after_ms": decision.retry_after_ms},
    )
    return JSONResponse(
        content=payload, status_code=status.HTTP_429_TOO_MANY_REQUESTS, headers=headers
    )


async def enforce_rate_limit(
    request: Request, services: Services
) -> tuple[JSONResponse | None, dict[str, str]]:
    """Count the request against its client key.

    Returns a ready 429 response when the key is over its ceiling, otherwise
    ``None`` together with the ``X-RateLimit-*`` headers to attach to the
    eventual response.
    """
    if not services.settings.rate_limit_enabled:
        return None, {}
    key = client_key_for_request(request)
    decision = services.rate_limiter.check_and_consume(key)
    if decision.allowed:
        return None, _rate_limit_headers(decision)

    logger.info("rate_limited path=%s retry_after_ms=%s", request.url.path, decision.retry_after_ms)
    request_ctx = get_request_context(request)
    request_ctx["ip_address"] = client_ip(request)
    await services.audit.record(
        None,
        ACTION_RATE_LIMITED,
        "request",
        None,
        {"path": request.url.path, "method": request.method, "retry_after_ms": decision.retry_after_ms},
        request_ctx=request_ctx,
    )
    return _throttle_response(request, decision), {}
