from __future__ import annotations

import pytest
from httpx import ASGITransport, AsyncClient

from polly.apps.api.main import create_app
from polly.core.config import get_settings
from polly.services.rate_limit import RateLimiter
from polly.services.registry import build_services


class _Clock:
    def __init__(self) -> None:
        self.value = 10_000.0

    def __call__(self) -> float:
        return self.value


@pytest.mark.asyncio
async def test_throttled_client_gets_429_with_retry_after(sql_store) -> None:
    clock = _Clock()
    limiter = RateLimiter(window_ms=300_000, max_requests=100, time_provider=clock)
    app = create_app(services=build_services(get_settings(), store=sql_store, rate_limiter=limiter))
    headers = {"User-Agent": "pytest-client"}

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        for _ in range(100):
            assert (await client.get("/v1/health", headers=headers)).status_code == 200

        limited = await client.get("/v1/health", headers=headers)
        assert limited.status_code == 429
        assert limited.headers["Retry-After"] == "300"
        assert limited.headers["X-RateLimit-Remaining"] == "0"
        assert limited.headers["X-RateLimit-Limit"] == "100"
        assert limited.json()["error"]["code"] == "RATE_LIMITED"

        # A different client signature has its own window.
        other = await client.get("/v1/health", headers={"User-Agent": "another-client"})
        assert other.status_code == 200

        clock.value += 301
        assert (await client.get("/v1/health", headers=headers)).status_code == 200

    [audit] = await sql_store.list_audit_records(action="rate_limited")
    assert audit.detail["path"] == "/v1/health"


@pytest.mark.asyncio
async def test_rate_limit_can_be_disabled(sql_store, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("RATE_LIMIT_ENABLED", "false")
    monkeypatch.setenv("RATE_LIMIT_MAX_REQUESTS", "1")
    get_settings.cache_clear()
    app = create_app(services=build_services(get_settings(), store=sql_store))

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        statuses = [(await client.get("/v1/health")).status_code for _ in range(3)]

    assert statuses == [200, 200, 200]
