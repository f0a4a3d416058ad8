from __future__ import annotations

import pytest
from httpx import ASGITransport, AsyncClient

from loyalty.api.routes import actions as actions_routes
from loyalty.api.routes import actions_helpers
from loyalty.core.config import Settings
from loyalty.main import app
from loyalty.services.rate_limiter import RateLimiter


@pytest.fixture
def rate_limit_settings() -> Settings:
    return Settings()


@pytest.fixture
def api_app(monkeypatch, session_factory, fake_redis, rate_limit_settings):
    limiter = RateLimiter(
        fake_redis,
        window_seconds=60,
        timeout_seconds=1.0,
        settings=rate_limit_settings,
    )
    monkeypatch.setattr(actions_helpers, "SessionLocal", session_factory)
    monkeypatch.setattr(actions_routes, "get_rate_limiter", lambda: limiter)
    return app


@pytest.fixture
async def api_client(api_app):
    async with AsyncClient(
        transport=ASGITransport(app=api_app, client=("127.0.0.1", 8080)),
        base_url="http://testserver",
    ) as client:
        yield client
