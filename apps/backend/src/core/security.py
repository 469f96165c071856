import logging
from datetime import UTC, datetime, timedelta
from typing import Any

from jose import JWTError, jwt

from core.config import Settings, get_settings
from core.exceptions import OAuthStateError


def _settings() -> Settings:  # lazy accessor to allow tests to set env first
    return get_settings()


# Module logger for security helpers
_logger = logging.getLogger(__name__)

STATE_TOKEN_TYPE = "oauth_state"


def create_state_token(account_id: str, exp_delta: timedelta | None = None) -> str:
    """Create a signed OAuth `state` value identifying the account being linked.

    Args:
        account_id: The configured account id the consent flow is for
        exp_delta: Optional expiration delta, defaults to OAUTH_STATE_EXPIRE_MINUTES

    Returns:
        Signed JWT carrying the account id, a token type and an expiry
    """
    s = _settings()
    if exp_delta is None:
        exp_delta = timedelta(minutes=s.OAUTH_STATE_EXPIRE_MINUTES)

    payload = {
        "account_id": account_id,
        "type": STATE_TOKEN_TYPE,
        "exp": datetime.now(UTC) + exp_delta,
    }
    return jwt.encode(payload, s.SECRET_KEY, algorithm=s.ALGORITHM)


def decode_state_token(token: str) -> str:
    """Decode and validate an OAuth `state` value, returning its account id.

    Raises:
        OAuthStateError: If the token is invalid, expired, or of the wrong type
    """
    try:
        s = _settings()
        payload = jwt.decode(
            token,
            s.SECRET_KEY,
            algorithms=[s.ALGORITHM],
            options={"verify_aud": False},
        )
    except JWTError as err:
        raise OAuthStateError("Invalid or expired OAuth state") from err

    account_id = payload.get("account_id")
    if not account_id or payload.get("type") != STATE_TOKEN_TYPE:
        raise OAuthStateError("Malformed OAuth state")
    return str(account_id)


def read_unverified_claims(token: str) -> dict[str, Any] | None:
    """Read the claims of a signed identity assertion without verifying it.

    The assertion is issued and checked by the access proxy in front of this
    service; here it is only used to label the caller. Returns None when the
    token is not a JWT.
    """
    try:
        claims = jwt.get_unverified_claims(token)
    except JWTError:
        _logger.debug("Identity assertion is not a decodable JWT")
        return None
    return claims if isinstance(claims, dict) else None
