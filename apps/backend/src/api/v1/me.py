from fastapi import APIRouter

from dependencies.identity import CurrentIdentity
from schemas.identity import Identity


router = APIRouter(tags=["identity"])


@router.get("/me", response_model=Identity)
async def who_am_i(identity: CurrentIdentity) -> Identity:
    """Display identity of the caller; `guest` when no assertion is present."""
    return identity
