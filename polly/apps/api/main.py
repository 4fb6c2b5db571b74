from __future__ import annotations

from contextlib import asynccontextmanager
import logging
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.openapi.utils import get_openapi
from starlette.exceptions import HTTPException as StarletteHTTPException

from polly.apps.api.errors import (
    http_exception_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)
from polly.apps.api.rate_limit import enforce_rate_limit
from polly.apps.api.response import API_VERSION
from polly.apps.api.routes.admin import router as admin_router
from polly.apps.api.routes.health import router as health_router
from polly.apps.api.routes.polls import router as polls_router
from polly.apps.api.security import apply_security_headers, enforce_origin
from polly.core.logging import configure_logging
from polly.persistence.store import describe_store
from polly.services.registry import Services, build_services


logger = logging.getLogger(__name__)


def create_app(services: Services | None = None) -> FastAPI:
    configure_logging()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        wired = app.state.services
        # The periodic purge lives exactly as long as the app.
        wired.rate_limiter.start()
        logger.info("app_started store=%s", describe_store(wired.store))
        try:
            yield
        finally:
            await wired.rate_limiter.stop()

    app = FastAPI(title="Polly API", lifespan=lifespan)
    app.state.services = services or build_services()

    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next):  # type: ignore[override]
        # Preserve incoming request IDs or assign a new one for traceability.
        request_id = request.headers.get("X-Request-Id") or str(uuid4())
        request.state.request_id = request_id
        wired: Services = request.app.state.services

        # Throttle first, then reject cross-site writes, before any route work.
        rejection, limit_headers = await enforce_rate_limit(request, wired)
        if rejection is None:
            rejection = await enforce_origin(request, wired)
        response = rejection if rejection is not None else await call_next(request)

        for name, value in limit_headers.items():
            response.headers.setdefault(name, value)
        response.headers.setdefault("X-Request-Id", request_id)
        return apply_security_headers(response)

    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.include_router(health_router, prefix=f"/{API_VERSION}")
    app.include_router(polls_router, prefix=f"/{API_VERSION}")
    # Admin views and role management; every call re-checks admin membership.
    app.include_router(admin_router, prefix=f"/{API_VERSION}")

    def custom_openapi() -> dict:
        # Advertise bearer auth on every route except the public read paths.
        if app.openapi_schema:
            return app.openapi_schema
        schema = get_openapi(title="Polly API", version=API_VERSION, routes=app.routes)
        components = schema.setdefault("components", {})
        security_schemes = components.setdefault("securitySchemes", {})
        security_schemes["BearerAuth"] = {"type": "http", "scheme": "bearer"}
        public_paths = {"/v1/health", "/v1/polls/{poll_id}", "/v1/polls/{poll_id}/results"}
        for path, operations in schema.get("paths", {}).items():
            if path in public_paths:
                continue
            for operation in operations.values():
                operation.setdefault("security", [{"BearerAuth": []}])
        app.openapi_schema = schema
        return app.openapi_schema

    app.openapi = custom_openapi

    return app


app = create_app()
