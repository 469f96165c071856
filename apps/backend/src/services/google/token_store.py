"""Key-value storage for linked-account credentials.

Production uses Upstash Redis over its REST API; development and tests fall
back to an in-process dict when Upstash is not configured. Keys have the
form `"<provider>:<account_id>"` and values are JSON documents.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Protocol

from upstash_redis.asyncio import Redis

from core.config import get_settings


logger = logging.getLogger(__name__)

GOOGLE_PROVIDER = "google"


def credential_key(account_id: str, provider: str = GOOGLE_PROVIDER) -> str:
    return f"{provider}:{account_id}"


class TokenStore(Protocol):
    async def get(self, key: str) -> str | None: ...

    async def put(self, key: str, value: str) -> None: ...

    async def delete(self, key: str) -> None: ...


class InMemoryTokenStore:
    """Process-local store; contents vanish on restart."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    async def get(self, key: str) -> str | None:
        return self._data.get(key)

    async def put(self, key: str, value: str) -> None:
        self._data[key] = value

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)


class UpstashTokenStore:
    """Store backed by Upstash Redis."""

    def __init__(self, redis: Redis) -> None:
        self._redis = redis

    async def get(self, key: str) -> str | None:
        value = await self._redis.get(key)
        return None if value is None else str(value)

    async def put(self, key: str, value: str) -> None:
        await self._redis.set(key, value)

    async def delete(self, key: str) -> None:
        await self._redis.delete(key)


@lru_cache
def get_token_store() -> TokenStore:
    """Create and cache the credential store for this process."""
    settings = get_settings()

    if not settings.UPSTASH_REDIS_REST_URL or not settings.UPSTASH_REDIS_REST_TOKEN:
        logger.warning(
            "Upstash Redis not configured. Linked-account credentials are kept "
            "in memory and will be lost on restart."
        )
        return InMemoryTokenStore()

    return UpstashTokenStore(
        Redis(
            url=settings.UPSTASH_REDIS_REST_URL,
            token=settings.UPSTASH_REDIS_REST_TOKEN,
        )
    )
