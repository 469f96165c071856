"""Schemas for linked Google accounts and the merged calendar/mail views."""

from __future__ import annotations

from datetime import datetime, timedelta

from pydantic import BaseModel, ConfigDict, Field


class AccountCredential(BaseModel):
    """Stored OAuth credentials for one linked account.

    Written whole on authorization and on every refresh; never patched.
    """

    account_id: str
    refresh_token: str = Field(..., min_length=1)
    access_token: str | None = None
    expires_at: datetime | None = None
    email: str | None = None
    connected_at: datetime

    model_config = ConfigDict(frozen=True)

    def has_fresh_access_token(self, now: datetime, margin: timedelta) -> bool:
        """True when the access token stays valid for at least `margin`."""
        if not self.access_token or self.expires_at is None:
            return False
        return self.expires_at - margin > now


class AccountStatus(BaseModel):
    """Connection state of one configured account."""

    account_id: str
    connected: bool
    email: str | None = None
    connected_at: datetime | None = None


class CalendarEvent(BaseModel):
    """Calendar event normalized across accounts."""

    id: str
    account_id: str
    title: str
    start: datetime
    end: datetime | None = None
    all_day: bool = False
    location: str | None = None
    html_link: str | None = None


class MailMessage(BaseModel):
    """Inbox message summary normalized across accounts."""

    id: str
    account_id: str
    thread_id: str | None = None
    sender: str | None = None
    subject: str
    snippet: str = ""
    received_at: datetime
    unread: bool = False


class MergedCalendar(BaseModel):
    """Upcoming events from every connected account, earliest first."""

    events: list[CalendarEvent]
    connected: list[str]


class MergedInbox(BaseModel):
    """Recent inbox messages from every connected account, newest first."""

    messages: list[MailMessage]
    connected: list[str]
