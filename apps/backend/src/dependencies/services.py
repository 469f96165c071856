"""Request-scoped service dependencies.

Each request gets its own `httpx.AsyncClient`; it is closed once the
response has been sent. The streaming relay opens its own client so that a
long-lived event stream never outlives the one handed to the route.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Annotated

import httpx
from fastapi import Depends

from core.config import Settings, get_settings
from services.github import GitHubPageRepository
from services.google.credentials import GoogleCredentialManager
from services.google.token_store import TokenStore, get_token_store
from services.relay import StreamRelay


async def get_http_client(
    settings: Annotated[Settings, Depends(get_settings)],
) -> AsyncIterator[httpx.AsyncClient]:
    async with httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SECONDS) as client:
        yield client


HttpClient = Annotated[httpx.AsyncClient, Depends(get_http_client)]


def get_store() -> TokenStore:
    return get_token_store()


def get_credential_manager(
    client: HttpClient,
    store: Annotated[TokenStore, Depends(get_store)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> GoogleCredentialManager:
    return GoogleCredentialManager(store, client, settings)


def get_page_repository(
    client: HttpClient,
    settings: Annotated[Settings, Depends(get_settings)],
) -> GitHubPageRepository:
    return GitHubPageRepository(client, settings)


def get_stream_relay(
    settings: Annotated[Settings, Depends(get_settings)],
) -> StreamRelay:
    return StreamRelay(settings)


CredentialManager = Annotated[GoogleCredentialManager, Depends(get_credential_manager)]
PageRepository = Annotated[GitHubPageRepository, Depends(get_page_repository)]
Relay = Annotated[StreamRelay, Depends(get_stream_relay)]
