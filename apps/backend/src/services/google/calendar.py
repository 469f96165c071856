"""Upcoming events across every linked Google Calendar."""

from __future__ import annotations

import logging
from datetime import UTC, date, datetime, time, timedelta
from functools import partial
from typing import Any

import httpx

from schemas.google import CalendarEvent, MergedCalendar
from services.google.credentials import GoogleCredentialManager
from services.google.merge import merge_accounts


logger = logging.getLogger(__name__)

CALENDAR_EVENTS_URL = "https://www.googleapis.com/calendar/v3/calendars/primary/events"
CALENDAR_PAGE_SIZE = 50
DEFAULT_WINDOW_DAYS = 7
MAX_WINDOW_DAYS = 31


def _rfc3339(value: datetime) -> str:
    return value.astimezone(UTC).isoformat().replace("+00:00", "Z")


def _parse_boundary(payload: Any) -> tuple[datetime | None, bool]:
    """Return (instant, all_day) for an event start/end object.

    All-day boundaries only carry a date; midnight UTC makes them sortable
    alongside timed events.
    """
    if not isinstance(payload, dict):
        return None, False

    date_time = payload.get("dateTime")
    if isinstance(date_time, str) and date_time:
        parsed = datetime.fromisoformat(date_time.replace("Z", "+00:00"))
        return (parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)), False

    day = payload.get("date")
    if isinstance(day, str) and day:
        return datetime.combine(date.fromisoformat(day), time.min, tzinfo=UTC), True

    return None, False


def normalize_event(payload: dict[str, Any], account_id: str) -> CalendarEvent | None:
    """Map one Calendar API event onto `CalendarEvent`; None for unusable events."""
    if payload.get("status") == "cancelled":
        return None

    start, all_day = _parse_boundary(payload.get("start"))
    event_id = payload.get("id")
    if start is None or not event_id:
        return None
    end, _ = _parse_boundary(payload.get("end"))

    return CalendarEvent(
        id=str(event_id),
        account_id=account_id,
        title=(payload.get("summary") or "").strip() or "(untitled)",
        start=start,
        end=end,
        all_day=all_day,
        location=payload.get("location") or None,
        html_link=payload.get("htmlLink") or None,
    )


async def fetch_account_events(
    client: httpx.AsyncClient,
    account_id: str,
    access_token: str,
    *,
    time_min: datetime,
    time_max: datetime,
) -> list[CalendarEvent]:
    """Fetch one page of upcoming events for a single account."""
    response = await client.get(
        CALENDAR_EVENTS_URL,
        params={
            "timeMin": _rfc3339(time_min),
            "timeMax": _rfc3339(time_max),
            "singleEvents": "true",
            "orderBy": "startTime",
            "maxResults": CALENDAR_PAGE_SIZE,
        },
        headers={"Authorization": f"Bearer {access_token}"},
    )
    response.raise_for_status()

    events: list[CalendarEvent] = []
    for item in response.json().get("items") or []:
        try:
            event = normalize_event(item, account_id)
        except ValueError:
            logger.debug("Skipping event with unparseable times for %s", account_id)
            continue
        if event is not None:
            events.append(event)
    return events


async def get_merged_calendar(
    manager: GoogleCredentialManager,
    client: httpx.AsyncClient,
    *,
    days: int = DEFAULT_WINDOW_DAYS,
    now: datetime | None = None,
) -> MergedCalendar:
    """Events from every connected account within `days`, earliest first."""
    time_min = now or datetime.now(UTC)
    time_max = time_min + timedelta(days=max(1, min(days, MAX_WINDOW_DAYS)))

    outcome = await merge_accounts(
        manager,
        manager.account_ids,
        partial(fetch_account_events, client, time_min=time_min, time_max=time_max),
        sort_key=lambda event: event.start,
    )
    return MergedCalendar(events=outcome.records, connected=outcome.connected)
