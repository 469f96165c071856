from fastapi import APIRouter

from .calendar import router as calendar_router
from .chat import router as chat_router
from .google import router as google_router
from .health import router as health_router
from .mail import router as mail_router
from .me import router as me_router
from .pages import router as pages_router


# Identity is asserted by the access proxy in front of the API, so every
# router is mounted without an auth dependency.
api_router = APIRouter()

api_router.include_router(health_router, tags=["health"])
api_router.include_router(me_router)
api_router.include_router(chat_router)
api_router.include_router(pages_router)
api_router.include_router(google_router)
api_router.include_router(calendar_router)
api_router.include_router(mail_router)
