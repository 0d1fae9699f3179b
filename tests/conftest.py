"""Pytest configuration and shared fixtures."""

import pytest
from fastapi.testclient import TestClient

from src.api.dependencies import get_counter_store, get_rate_limiter
from src.config.settings import Settings, get_settings
from src.core.uploads.credentials import CredentialIssuer
from src.core.uploads.rate_limit import FixedWindowRateLimiter
from src.infrastructure.counters.store import MockCounterStore
from src.main import create_app
from tests.helpers import PRIVATE_KEY, PUBLIC_KEY, FakeClock


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> Settings:
    """Settings for tests: mock infrastructure, known keys, 10 requests / 10 s."""
    return Settings(
        _env_file=None,
        imagekit_private_key=PRIVATE_KEY,
        imagekit_public_key=PUBLIC_KEY,
        imagekit_url_endpoint="https://ik.example.com/demo",
        redis_mock_mode=True,
        storage_mock_mode=True,
        rate_limit_max_requests=10,
        rate_limit_window_seconds=10,
    )


@pytest.fixture
def counter_store() -> MockCounterStore:
    return MockCounterStore()


@pytest.fixture
def rate_limiter(settings, counter_store, clock) -> FixedWindowRateLimiter:
    return FixedWindowRateLimiter(
        store=counter_store,
        max_requests=settings.rate_limit_max_requests,
        window_seconds=settings.rate_limit_window_seconds,
        clock=clock,
    )


@pytest.fixture
def issuer(settings) -> CredentialIssuer:
    """Issuer holding the same key as the app, for verifying what it hands out."""
    return CredentialIssuer(private_key=settings.imagekit_private_key)


@pytest.fixture
def app(settings, counter_store, rate_limiter):
    """
    Fresh application with test settings.

    The counter store and limiter are overridden so counts never leak
    between tests and windows follow the fake clock.
    """
    application = create_app()
    application.dependency_overrides[get_settings] = lambda: settings
    application.dependency_overrides[get_counter_store] = lambda: counter_store
    application.dependency_overrides[get_rate_limiter] = lambda: rate_limiter
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)
