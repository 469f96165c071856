"""Shared test fixtures for pytest.

We set minimal env defaults (e.g. SECRET_KEY) early so importing modules
that instantiate settings (core.security, main) succeeds without needing an
external .env file during tests.
"""

import os
from collections.abc import AsyncGenerator, Callable, Generator

import httpx
import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient


os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("SECRET_KEY", "test-secret-key")

from core.config import Settings
from dependencies.services import get_store
from main import app
from services.google.token_store import InMemoryTokenStore


TEST_SECRET_KEY = os.environ["SECRET_KEY"]

Handler = Callable[[httpx.Request], httpx.Response]


def make_settings(**overrides) -> Settings:
    """Settings with every upstream configured; no env file is read."""
    values = {
        "ENVIRONMENT": "test",
        "SECRET_KEY": TEST_SECRET_KEY,
        "ANTHROPIC_API_KEY": "test-anthropic-key",
        "GITHUB_TOKEN": "test-github-token",
        "GITHUB_REPO_OWNER": "family",
        "GITHUB_REPO_NAME": "site",
        "GOOGLE_CLIENT_ID": "test-client-id",
        "GOOGLE_CLIENT_SECRET": "test-client-secret",
        "GOOGLE_ACCOUNTS": ["primary", "partner"],
        "OAUTH_COMPLETE_REDIRECT_URL": "http://localhost:5173/admin",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)  # type: ignore[call-arg]


def mock_client(handler: Handler) -> httpx.AsyncClient:
    """AsyncClient whose every request is answered by `handler`."""
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def token_store() -> InMemoryTokenStore:
    return InMemoryTokenStore()


@pytest.fixture
def client() -> Generator[TestClient, None, None]:
    """
    Create a test client for the FastAPI application.
    """
    with TestClient(app) as client:
        yield client


@pytest_asyncio.fixture
async def async_client(
    token_store: InMemoryTokenStore,
) -> AsyncGenerator[AsyncClient, None]:
    """ASGI client with a fresh credential store per test."""
    app.dependency_overrides[get_store] = lambda: token_store
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac
    app.dependency_overrides.clear()
