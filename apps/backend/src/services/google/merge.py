"""Fan out one read per linked account and merge the results."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any, Generic, Protocol, TypeVar


logger = logging.getLogger(__name__)

T = TypeVar("T")

AccountFetcher = Callable[[str, str], Awaitable[list[T]]]


class AccessTokenSource(Protocol):
    async def get_access_token(self, account_id: str) -> str | None: ...


@dataclass(frozen=True)
class MergeOutcome(Generic[T]):
    records: list[T]
    connected: list[str]


async def _fetch_account(
    tokens: AccessTokenSource,
    account_id: str,
    fetch: AccountFetcher[T],
) -> tuple[bool, list[T]]:
    """Return (connected, records) for one account; never raises."""
    try:
        token = await tokens.get_access_token(account_id)
    except Exception:
        logger.exception("Token lookup for %s failed; skipping account", account_id)
        return False, []
    if token is None:
        return False, []

    try:
        return True, await fetch(account_id, token)
    except Exception as exc:
        logger.warning(
            "Fetch for %s failed (%s); skipping its records",
            account_id,
            type(exc).__name__,
        )
        return True, []


async def merge_accounts(
    tokens: AccessTokenSource,
    account_ids: Sequence[str],
    fetch: AccountFetcher[T],
    *,
    sort_key: Callable[[T], Any],
    newest_first: bool = False,
) -> MergeOutcome[T]:
    """Fetch every account concurrently and sort the combined records.

    Accounts without a token, or whose fetch fails, contribute nothing;
    `connected` lists those that produced a token, in configured order.
    """
    results = await asyncio.gather(
        *(_fetch_account(tokens, account_id, fetch) for account_id in account_ids)
    )

    records: list[T] = []
    connected: list[str] = []
    for account_id, (is_connected, account_records) in zip(
        account_ids, results, strict=True
    ):
        if is_connected:
            connected.append(account_id)
        records.extend(account_records)

    records.sort(key=sort_key, reverse=newest_first)
    return MergeOutcome(records=records, connected=connected)
