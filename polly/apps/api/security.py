from __future__ import annotations

import logging
from urllib.parse import urlsplit

from fastapi import Request, Response, status
from fastapi.responses import JSONResponse

from polly.apps.api.response import error_response
from polly.services.audit import ACTION_ORIGIN_REJECTED, get_request_context
from polly.services.registry import Services


logger = logging.getLogger(__name__)

SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})

SECURITY_HEADERS = {
    "X-Frame-Options": "DENY",
    "X-Content-Type-Options": "nosniff",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "X-XSS-Protection": "1; mode=block",
}


def origin_allowed(method: str, headers, *, csrf_header: str) -> bool:
    """Return whether a request passes the cross-site request check.

    Safe methods always pass. When both ``Origin`` and ``Host`` are present
    the origin's host (including port) must equal ``Host``; otherwise the
    request must carry a non-empty CSRF token header.
    """
    if method.upper() in SAFE_METHODS:
        return True
    origin = headers.get("origin")
    host = headers.get("host")
    if origin and host:
        try:
            origin_host = urlsplit(origin).netloc
        except ValueError:
            return False
        return bool(origin_host) and origin_host.lower() == host.lower()
    token = headers.get(csrf_header)
    return bool(token and token.strip())


async def enforce_origin(request: Request, services: Services) -> JSONResponse | None:
    settings = services.settings
    if not settings.csrf_protection_enabled:
        return None
    if origin_allowed(request.method, request.headers, csrf_header=settings.csrf_token_header):
        return None

    logger.info(
        "origin_rejected path=%s origin=%s host=%s",
        request.url.path,
        request.headers.get("origin"),
        request.headers.get("host"),
    )
    await services.audit.record(
        None,
        ACTION_ORIGIN_REJECTED,
        "request",
        None,
        {
            "path": request.url.path,
            "method": request.method,
            "origin": request.headers.get("origin"),
            "host": request.headers.get("host"),
        },
        request_ctx=get_request_context(request),
    )
    payload = error_response(request=request, code="CSRF_REJECTED", message="CSRF protection failed")
    return JSONResponse(
        content=payload,
        status_code=status.HTTP_403_FORBIDDEN,
        headers={"X-CSRF-Protection": "Required"},
    )


def apply_security_headers(response: Response) -> Response:
    for name, value in SECURITY_HEADERS.items():
        response.headers.setdefault(name, value)
    return response
