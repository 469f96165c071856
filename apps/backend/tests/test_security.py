"""Unit tests for core/security.py covering OAuth state and identity assertions."""

from __future__ import annotations

from datetime import timedelta

import pytest
from jose import jwt

from core.config import get_settings
from core.exceptions import OAuthStateError
from core.security import (
    STATE_TOKEN_TYPE,
    create_state_token,
    decode_state_token,
    read_unverified_claims,
)


class TestStateToken:
    """Tests for signed OAuth state creation and decoding."""

    def test_round_trip_returns_account_id(self):
        """Valid state should decode to the account it was issued for."""
        token = create_state_token("partner")
        assert decode_state_token(token) == "partner"

    def test_expired_state_is_rejected(self):
        """Expired state should raise OAuthStateError."""
        token = create_state_token("partner", exp_delta=timedelta(minutes=-1))
        with pytest.raises(OAuthStateError, match="Invalid or expired"):
            decode_state_token(token)

    def test_garbage_state_is_rejected(self):
        with pytest.raises(OAuthStateError):
            decode_state_token("not.a.valid.token")

    def test_state_signed_with_other_key_is_rejected(self):
        settings = get_settings()
        token = jwt.encode(
            {"account_id": "primary", "type": STATE_TOKEN_TYPE, "exp": 9999999999},
            "some-other-key",
            algorithm=settings.ALGORITHM,
        )
        with pytest.raises(OAuthStateError):
            decode_state_token(token)

    def test_state_with_wrong_type_is_rejected(self):
        """A validly signed token of another type must not pass as state."""
        settings = get_settings()
        token = jwt.encode(
            {"account_id": "primary", "type": "wrong", "exp": 9999999999},
            settings.SECRET_KEY,
            algorithm=settings.ALGORITHM,
        )
        with pytest.raises(OAuthStateError, match="Malformed"):
            decode_state_token(token)

    def test_state_without_account_is_rejected(self):
        settings = get_settings()
        token = jwt.encode(
            {"type": STATE_TOKEN_TYPE, "exp": 9999999999},
            settings.SECRET_KEY,
            algorithm=settings.ALGORITHM,
        )
        with pytest.raises(OAuthStateError):
            decode_state_token(token)


class TestUnverifiedClaims:
    """Claims are read without any signature check."""

    def test_reads_claims_of_foreign_token(self):
        token = jwt.encode({"email": "a@b.test"}, "unknown-key", algorithm="HS256")
        assert read_unverified_claims(token) == {"email": "a@b.test"}

    def test_non_jwt_returns_none(self):
        assert read_unverified_claims("opaque-session-id") is None
