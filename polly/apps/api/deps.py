from __future__ import annotations

from fastapi import Request

from polly.apps.api.rate_limit import client_ip
from polly.domain.principal import Principal
from polly.services.audit import RequestContext, get_request_context
from polly.services.identity import RequestCredentials
from polly.services.registry import Services


def get_services(request: Request) -> Services:
    # One wired component graph per app, built at startup.
    return request.app.state.services


def get_principal(request: Request) -> Principal:
    # Resolve the caller per request; invalid or missing credentials read as anonymous.
    services = get_services(request)
    credentials = RequestCredentials.from_headers(
        request.headers,
        request.cookies,
        cookie_name=services.settings.auth_session_cookie,
    )
    return services.identity.resolve(credentials)


def get_request_ctx(request: Request) -> RequestContext:
    # Audit context with the proxy-aware client address.
    ctx = get_request_context(request)
    ctx["ip_address"] = client_ip(request)
    return ctx
