from fastapi import APIRouter

from dependencies.services import CredentialManager, HttpClient
from schemas.api import ApiResponse
from schemas.google import MergedInbox
from services.google.mail import get_merged_inbox


router = APIRouter(prefix="/mail", tags=["mail"])


@router.get("/messages", response_model=ApiResponse[MergedInbox])
async def list_messages(
    manager: CredentialManager, client: HttpClient
) -> ApiResponse[MergedInbox]:
    """Recent inbox messages of every connected account, newest first."""
    inbox = await get_merged_inbox(manager, client)
    return ApiResponse(
        data=inbox,
        message=f"{len(inbox.messages)} messages from {len(inbox.connected)} accounts",
    )
