"""Linking, listing and unlinking Google accounts."""

from __future__ import annotations

import logging
from typing import Annotated
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import RedirectResponse

from core.config import Settings, get_settings
from core.exceptions import AuthorizationError, OAuthStateError
from dependencies.services import CredentialManager
from schemas.api import ApiResponse
from schemas.google import AccountStatus


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/google", tags=["google"])


def _completion_redirect(settings: Settings, **params: str) -> RedirectResponse:
    base = settings.OAUTH_COMPLETE_REDIRECT_URL
    separator = "&" if "?" in base else "?"
    return RedirectResponse(
        f"{base}{separator}{urlencode(params)}",
        status_code=status.HTTP_303_SEE_OTHER,
    )


@router.get("/accounts", response_model=ApiResponse[list[AccountStatus]])
async def list_accounts(manager: CredentialManager) -> ApiResponse[list[AccountStatus]]:
    """Connection status of every configured account."""
    statuses = await manager.account_statuses()
    return ApiResponse(data=statuses, message="Account status retrieved")


@router.get("/accounts/{account_id}/connect")
async def connect_account(account_id: str, manager: CredentialManager) -> RedirectResponse:
    """Send the browser to Google's consent screen for `account_id`."""
    return RedirectResponse(
        manager.build_consent_url(account_id),
        status_code=status.HTTP_307_TEMPORARY_REDIRECT,
    )


@router.get("/callback")
async def oauth_callback(
    manager: CredentialManager,
    settings: Annotated[Settings, Depends(get_settings)],
    code: str | None = Query(default=None),
    state: str | None = Query(default=None),
    error: str | None = Query(default=None),
) -> RedirectResponse:
    """Finish a consent flow and return the browser to the admin UI."""
    if error:
        logger.info("Consent was not granted: %s", error)
        return _completion_redirect(settings, error=error)

    if not code or not state:
        raise OAuthStateError("Callback is missing its code or state")

    # Validates the state before any token exchange happens
    account_id = manager.account_for_state(state)
    try:
        record = await manager.complete_authorization(code, state)
    except AuthorizationError as exc:
        logger.warning("Linking %s failed: %s", account_id, exc)
        return _completion_redirect(settings, error="exchange_failed", account=account_id)

    return _completion_redirect(settings, connected=record.account_id)


@router.delete("/accounts/{account_id}", response_model=ApiResponse[AccountStatus])
async def disconnect_account(
    account_id: str, manager: CredentialManager
) -> ApiResponse[AccountStatus]:
    """Forget the stored credentials for `account_id`."""
    await manager.disconnect(account_id)
    return ApiResponse(
        data=AccountStatus(account_id=account_id, connected=False),
        message=f"Account '{account_id}' disconnected",
    )
