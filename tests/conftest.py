"""Test fixtures."""

import asyncio
import os

os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-with-enough-length-0123456789")
os.environ.setdefault("JWT_ISSUER", "currency-gateway-tests")
os.environ.setdefault("JWT_AUDIENCE", "currency-gateway-clients")
os.environ.setdefault("LOG_FILE", "")
os.environ.setdefault("TRACING_ENABLED", "false")

from typing import AsyncGenerator, Callable

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from app.api.currency import get_currency_service
from app.main import app
from app.services.auth import create_access_token
from app.services.cache import MemoryCache
from app.services.currency import CurrencyService, CurrencyServiceOptions
from app.services.provider import FrankfurterClient
from app.services.resilience import CircuitBreaker, ResiliencePolicy

BASE_URL = "https://fx.test"


async def no_sleep(_seconds: float) -> None:
    return None


class FakeProvider:
    """Programmable upstream: maps (path, base) -> response factory.

    ``routes`` values are either a dict (200 JSON), an int (bare status), an
    ``httpx.Response`` or an exception instance to raise. ``latency`` maps a
    path to seconds the response is held back.
    """

    def __init__(self, routes: dict | None = None, latency: dict | None = None):
        self.routes = routes or {}
        self.latency = latency or {}
        self.calls: list[tuple[str, str]] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.lstrip("/")
        base = request.url.params.get("base", "")
        self.calls.append((path, base))
        result = self.routes.get((path, base), 404)
        if isinstance(result, Exception):
            raise result
        if isinstance(result, httpx.Response):
            return result
        if isinstance(result, int):
            return httpx.Response(result, json={"message": "error"})
        return httpx.Response(200, json=result)

    async def async_handler(self, request: httpx.Request) -> httpx.Response:
        delay = self.latency.get(request.url.path.lstrip("/"))
        if delay:
            await asyncio.sleep(delay)
        return self.handler(request)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.async_handler)


def build_service(
    fake: FakeProvider,
    breaker: CircuitBreaker | None = None,
    cache: MemoryCache | None = None,
    options: CurrencyServiceOptions | None = None,
) -> CurrencyService:
    http = httpx.AsyncClient(transport=fake.transport())
    policy = ResiliencePolicy(breaker=breaker or CircuitBreaker(), sleep=no_sleep)
    provider = FrankfurterClient(http, policy, base_url=BASE_URL)
    return CurrencyService(provider, cache if cache is not None else MemoryCache(), options)


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider({
        ("latest", "USD"): {"amount": 1.0, "base": "USD", "date": "2024-01-05", "rates": {"EUR": 0.90, "GBP": 0.79}},
    })


@pytest.fixture
def service_factory() -> Callable[..., CurrencyService]:
    return build_service


@pytest.fixture
def service(fake_provider) -> CurrencyService:
    return build_service(fake_provider)


@pytest_asyncio.fixture
async def client(service) -> AsyncGenerator[AsyncClient, None]:
    app.dependency_overrides[get_currency_service] = lambda: service
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers() -> dict:
    token = create_access_token({"sub": "admin", "role": "Admin"})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def user_headers() -> dict:
    token = create_access_token({"sub": "testuser1", "role": "User"})
    return {"Authorization": f"Bearer {token}"}
