"""Site-building chat endpoints relaying the generation service."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse, StreamingResponse

from core.error_handler import get_correlation_id
from core.ratelimit import check_rate_limit
from dependencies.identity import CurrentIdentity
from dependencies.services import Relay
from schemas.api import ErrorResponse
from schemas.chat_streaming import ConversationTurn, RelayResult


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chat", tags=["chat"])

SSE_HEADERS = {"Cache-Control": "no-cache", "X-Accel-Buffering": "no"}


@router.post(
    "/stream",
    response_class=StreamingResponse,
    dependencies=[Depends(check_rate_limit)],
)
async def stream_chat(
    turn: ConversationTurn,
    relay: Relay,
    identity: CurrentIdentity,
) -> StreamingResponse:
    """Stream one turn as `status`/`text` events ending in `done` or `error`."""
    logger.info(
        "Chat turn from %s (mode=%s, history=%d)",
        identity.name,
        turn.context.mode if turn.context else "build",
        len(turn.history),
    )

    async def event_stream() -> AsyncGenerator[str, None]:
        async for event in relay.stream(turn):
            yield event.to_sse()

    return StreamingResponse(
        event_stream(), media_type="text/event-stream", headers=SSE_HEADERS
    )


@router.post(
    "",
    response_model=RelayResult,
    dependencies=[Depends(check_rate_limit)],
    responses={status.HTTP_502_BAD_GATEWAY: {"model": ErrorResponse}},
)
async def chat(turn: ConversationTurn, relay: Relay) -> RelayResult | JSONResponse:
    """Run one turn to completion and return the final message and artifact."""
    terminal = await relay.collect(turn)
    if terminal.event == "done":
        return RelayResult.model_validate(terminal.data)

    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY,
        content=ErrorResponse.of(
            terminal.data.get("message", "The AI service failed to respond."),
            error_type="upstream_error",
            correlation_id=get_correlation_id(),
        ).model_dump(),
    )
