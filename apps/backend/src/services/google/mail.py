"""Recent inbox messages across every linked Gmail account."""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime
from functools import partial
from typing import Any

import httpx

from schemas.google import MailMessage, MergedInbox
from services.google.credentials import GoogleCredentialManager
from services.google.merge import merge_accounts


logger = logging.getLogger(__name__)

GMAIL_MESSAGES_URL = "https://gmail.googleapis.com/gmail/v1/users/me/messages"
INBOX_PAGE_SIZE = 10
INBOX_QUERY = "in:inbox"
METADATA_HEADERS = ("From", "Subject")


def _header(headers: list[dict[str, Any]], name: str) -> str | None:
    wanted = name.lower()
    for header in headers:
        if str(header.get("name", "")).lower() == wanted:
            return header.get("value")
    return None


def normalize_message(payload: dict[str, Any], account_id: str) -> MailMessage:
    """Map a Gmail `format=metadata` message onto `MailMessage`.

    Raises:
        ValueError: If the message lacks an id or a numeric internalDate
    """
    message_id = payload.get("id")
    if not message_id:
        raise ValueError("Gmail message is missing an id")

    received_at = datetime.fromtimestamp(int(payload["internalDate"]) / 1000, tz=UTC)
    headers = (payload.get("payload") or {}).get("headers") or []

    return MailMessage(
        id=str(message_id),
        account_id=account_id,
        thread_id=payload.get("threadId"),
        sender=_header(headers, "From"),
        subject=(_header(headers, "Subject") or "").strip() or "(no subject)",
        snippet=payload.get("snippet") or "",
        received_at=received_at,
        unread="UNREAD" in (payload.get("labelIds") or []),
    )


async def _fetch_message(
    client: httpx.AsyncClient, access_token: str, message_id: str
) -> dict[str, Any]:
    response = await client.get(
        f"{GMAIL_MESSAGES_URL}/{message_id}",
        params=[("format", "metadata")]
        + [("metadataHeaders", name) for name in METADATA_HEADERS],
        headers={"Authorization": f"Bearer {access_token}"},
    )
    response.raise_for_status()
    return response.json()


async def fetch_account_messages(
    client: httpx.AsyncClient,
    account_id: str,
    access_token: str,
    *,
    limit: int = INBOX_PAGE_SIZE,
) -> list[MailMessage]:
    """Fetch one page of inbox messages with their headers for one account."""
    response = await client.get(
        GMAIL_MESSAGES_URL,
        params={"maxResults": limit, "q": INBOX_QUERY},
        headers={"Authorization": f"Bearer {access_token}"},
    )
    response.raise_for_status()
    refs = response.json().get("messages") or []

    # The list call only returns ids; headers need one call per message
    details = await asyncio.gather(
        *(_fetch_message(client, access_token, ref["id"]) for ref in refs if ref.get("id"))
    )

    messages: list[MailMessage] = []
    for detail in details:
        try:
            messages.append(normalize_message(detail, account_id))
        except (KeyError, ValueError, TypeError):
            logger.debug("Skipping unreadable message for %s", account_id)
    return messages


async def get_merged_inbox(
    manager: GoogleCredentialManager,
    client: httpx.AsyncClient,
    *,
    limit: int = INBOX_PAGE_SIZE,
) -> MergedInbox:
    """Inbox messages from every connected account, newest first."""
    outcome = await merge_accounts(
        manager,
        manager.account_ids,
        partial(fetch_account_messages, client, limit=limit),
        sort_key=lambda message: message.received_at,
        newest_first=True,
    )
    return MergedInbox(messages=outcome.records, connected=outcome.connected)
