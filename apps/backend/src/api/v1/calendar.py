from fastapi import APIRouter, Query

from dependencies.services import CredentialManager, HttpClient
from schemas.api import ApiResponse
from schemas.google import MergedCalendar
from services.google.calendar import (
    DEFAULT_WINDOW_DAYS,
    MAX_WINDOW_DAYS,
    get_merged_calendar,
)


router = APIRouter(prefix="/calendar", tags=["calendar"])


@router.get("/events", response_model=ApiResponse[MergedCalendar])
async def list_events(
    manager: CredentialManager,
    client: HttpClient,
    days: int = Query(default=DEFAULT_WINDOW_DAYS, ge=1, le=MAX_WINDOW_DAYS),
) -> ApiResponse[MergedCalendar]:
    """Upcoming events of every connected account, earliest first."""
    calendar = await get_merged_calendar(manager, client, days=days)
    return ApiResponse(
        data=calendar,
        message=f"{len(calendar.events)} events from {len(calendar.connected)} accounts",
    )
