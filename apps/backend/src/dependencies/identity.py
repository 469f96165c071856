from __future__ import annotations

import logging
from typing import Annotated, Any

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from core.security import read_unverified_claims
from schemas.identity import ANONYMOUS_IDENTITY, Identity


LOGGER = logging.getLogger(__name__)

# Missing headers fall through to the anonymous identity instead of a 403
bearer_scheme = HTTPBearer(auto_error=False)

IDENTITY_CLAIMS = ("email", "name", "sub")


def _claim(claims: dict[str, Any], key: str) -> str | None:
    value = claims.get(key)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def identity_from_token(token: str | None) -> Identity:
    """Derive a display identity from a bearer assertion; `guest` when unusable."""
    if not token:
        return Identity()

    claims = read_unverified_claims(token)
    if not claims:
        return Identity()

    for key in IDENTITY_CLAIMS:
        name = _claim(claims, key)
        if name:
            return Identity(name=name, email=_claim(claims, "email"), authenticated=True)

    LOGGER.debug("Identity assertion carried no usable claim")
    return Identity(name=ANONYMOUS_IDENTITY)


async def get_identity(
    credentials: Annotated[
        HTTPAuthorizationCredentials | None, Depends(bearer_scheme)
    ],
) -> Identity:
    return identity_from_token(credentials.credentials if credentials else None)


CurrentIdentity = Annotated[Identity, Depends(get_identity)]
