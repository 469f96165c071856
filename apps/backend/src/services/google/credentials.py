"""Credential lifecycle for linked Google accounts.

Each configured account id owns at most one `AccountCredential` record in the
token store. `get_access_token` serves the cached access token while it has
more than `TOKEN_REFRESH_MARGIN` left, otherwise refreshes it. A refresh the
provider rejects (a 4xx answer or an `error` body) deletes the record: the
refresh token is dead and the account has to be linked again. Outages and
throttling (5xx, 429) keep the record.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any
from urllib.parse import urlencode

import httpx
from pydantic import ValidationError

from core.config import Settings
from core.exceptions import AuthorizationError, UnknownAccountError
from core.security import create_state_token, decode_state_token
from schemas.google import AccountCredential, AccountStatus
from services.google.token_store import TokenStore, credential_key


logger = logging.getLogger(__name__)

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"
GOOGLE_SCOPES = (
    "openid",
    "email",
    "https://www.googleapis.com/auth/calendar.readonly",
    "https://www.googleapis.com/auth/gmail.readonly",
)

TOKEN_REFRESH_MARGIN = timedelta(minutes=5)
DEFAULT_EXPIRES_IN_SECONDS = 3600


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _coerce_expires_in(value: Any) -> int:
    if isinstance(value, bool):
        return DEFAULT_EXPIRES_IN_SECONDS
    if isinstance(value, int | float) and value > 0:
        return int(value)
    return DEFAULT_EXPIRES_IN_SECONDS


def _is_provider_rejection(response: httpx.Response, payload: Any) -> bool:
    if not response.is_success:
        return True
    if not isinstance(payload, dict) or payload.get("error"):
        return True
    access_token = payload.get("access_token")
    return not isinstance(access_token, str) or not access_token.strip()


class GoogleCredentialManager:
    """Issues valid access tokens for the configured accounts."""

    def __init__(
        self,
        store: TokenStore,
        http_client: httpx.AsyncClient,
        settings: Settings,
        *,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._http = http_client
        self._settings = settings
        self._now = now

    @property
    def account_ids(self) -> list[str]:
        return self._settings.google_account_ids

    def ensure_account(self, account_id: str) -> str:
        if account_id not in self.account_ids:
            raise UnknownAccountError(f"Account '{account_id}' is not configured")
        return account_id

    # ------------------------------------------------------------------ #
    # Record storage
    # ------------------------------------------------------------------ #
    async def load(self, account_id: str) -> AccountCredential | None:
        raw = await self._store.get(credential_key(account_id))
        if raw is None:
            return None
        try:
            return AccountCredential.model_validate_json(raw)
        except ValidationError:
            logger.warning("Stored credential for %s is unreadable", account_id)
            return None

    async def _save(self, record: AccountCredential) -> None:
        await self._store.put(credential_key(record.account_id), record.model_dump_json())

    async def disconnect(self, account_id: str) -> None:
        """Forget an account's credentials; a no-op when none are stored."""
        self.ensure_account(account_id)
        await self._store.delete(credential_key(account_id))
        logger.info("Disconnected Google account %s", account_id)

    async def account_statuses(self) -> list[AccountStatus]:
        statuses: list[AccountStatus] = []
        for account_id in self.account_ids:
            record = await self.load(account_id)
            statuses.append(
                AccountStatus(
                    account_id=account_id,
                    connected=record is not None,
                    email=record.email if record else None,
                    connected_at=record.connected_at if record else None,
                )
            )
        return statuses

    # ------------------------------------------------------------------ #
    # Access tokens
    # ------------------------------------------------------------------ #
    async def get_access_token(self, account_id: str) -> str | None:
        """Return a valid access token, or None if the account can't provide one."""
        record = await self.load(account_id)
        if record is None or not record.refresh_token:
            return None

        if record.has_fresh_access_token(self._now(), TOKEN_REFRESH_MARGIN):
            return record.access_token

        return await self._refresh(record)

    async def _refresh(self, record: AccountCredential) -> str | None:
        try:
            response = await self._http.post(
                GOOGLE_TOKEN_URL,
                data={
                    "client_id": self._settings.GOOGLE_CLIENT_ID or "",
                    "client_secret": self._settings.GOOGLE_CLIENT_SECRET or "",
                    "refresh_token": record.refresh_token,
                    "grant_type": "refresh_token",
                },
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPError as exc:
            # Transport trouble says nothing about the refresh token; keep it
            logger.warning(
                "Token refresh for %s failed: %s", record.account_id, type(exc).__name__
            )
            return None

        if response.status_code == 429 or response.status_code >= 500:
            # Provider outage or throttling; the refresh token is still good
            logger.warning(
                "Token refresh for %s unavailable (%s); keeping credentials",
                record.account_id,
                response.status_code,
            )
            return None

        try:
            payload = response.json()
        except ValueError:
            if response.is_success:
                logger.warning("Token refresh for %s returned no JSON", record.account_id)
                return None
            payload = None

        if _is_provider_rejection(response, payload):
            error = payload.get("error") if isinstance(payload, dict) else None
            logger.warning(
                "Provider rejected refresh for %s (%s, %s); removing credentials",
                record.account_id,
                response.status_code,
                error or "no error code",
            )
            await self._store.delete(credential_key(record.account_id))
            return None

        access_token = payload["access_token"].strip()
        refreshed = record.model_copy(
            update={
                "access_token": access_token,
                "expires_at": self._now()
                + timedelta(seconds=_coerce_expires_in(payload.get("expires_in"))),
            }
        )
        await self._save(refreshed)
        logger.info("Refreshed access token for %s", record.account_id)
        return access_token

    # ------------------------------------------------------------------ #
    # Authorization flow
    # ------------------------------------------------------------------ #
    def build_consent_url(self, account_id: str) -> str:
        """Consent screen URL for linking `account_id`."""
        self.ensure_account(account_id)
        params = {
            "client_id": self._settings.GOOGLE_CLIENT_ID or "",
            "redirect_uri": self._settings.GOOGLE_REDIRECT_URI,
            "response_type": "code",
            "scope": " ".join(GOOGLE_SCOPES),
            "access_type": "offline",
            # Forces a refresh token even when the user consented before
            "prompt": "consent",
            "include_granted_scopes": "true",
            "state": create_state_token(account_id),
        }
        return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"

    def account_for_state(self, state: str) -> str:
        return self.ensure_account(decode_state_token(state))

    async def complete_authorization(self, code: str, state: str) -> AccountCredential:
        """Exchange a callback code and create the account's first record.

        Raises:
            OAuthStateError: If `state` is invalid or expired
            UnknownAccountError: If `state` names an account no longer configured
            AuthorizationError: If the exchange fails or returns no refresh token
        """
        account_id = self.account_for_state(state)

        try:
            response = await self._http.post(
                GOOGLE_TOKEN_URL,
                data={
                    "client_id": self._settings.GOOGLE_CLIENT_ID or "",
                    "client_secret": self._settings.GOOGLE_CLIENT_SECRET or "",
                    "code": code,
                    "redirect_uri": self._settings.GOOGLE_REDIRECT_URI,
                    "grant_type": "authorization_code",
                },
                headers={"Accept": "application/json"},
            )
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise AuthorizationError(
                f"Code exchange request failed: {type(exc).__name__}"
            ) from exc

        if _is_provider_rejection(response, payload):
            error = payload.get("error") if isinstance(payload, dict) else None
            raise AuthorizationError(
                f"Code exchange rejected ({response.status_code}, {error or 'unknown'})"
            )
        refresh_token = payload.get("refresh_token")
        if not refresh_token:
            raise AuthorizationError("Code exchange returned no refresh token")

        access_token = payload["access_token"]
        now = self._now()
        record = AccountCredential(
            account_id=account_id,
            refresh_token=refresh_token,
            access_token=access_token,
            expires_at=now
            + timedelta(seconds=_coerce_expires_in(payload.get("expires_in"))),
            email=await self._fetch_email(access_token),
            connected_at=now,
        )
        await self._save(record)
        logger.info("Linked Google account %s", account_id)
        return record

    async def _fetch_email(self, access_token: str) -> str | None:
        try:
            response = await self._http.get(
                GOOGLE_USERINFO_URL,
                headers={"Authorization": f"Bearer {access_token}"},
            )
            response.raise_for_status()
            email = response.json().get("email")
        except (httpx.HTTPError, ValueError, AttributeError) as exc:
            logger.warning("Userinfo lookup failed: %s", type(exc).__name__)
            return None
        return email if isinstance(email, str) else None
