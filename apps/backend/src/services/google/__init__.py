"""Linked Google accounts: credential lifecycle and merged calendar/mail reads."""

from services.google.calendar import get_merged_calendar
from services.google.credentials import TOKEN_REFRESH_MARGIN, GoogleCredentialManager
from services.google.mail import get_merged_inbox
from services.google.token_store import (
    InMemoryTokenStore,
    TokenStore,
    UpstashTokenStore,
    credential_key,
    get_token_store,
)


__all__ = [
    "GoogleCredentialManager",
    "InMemoryTokenStore",
    "TOKEN_REFRESH_MARGIN",
    "TokenStore",
    "UpstashTokenStore",
    "credential_key",
    "get_merged_calendar",
    "get_merged_inbox",
    "get_token_store",
]
