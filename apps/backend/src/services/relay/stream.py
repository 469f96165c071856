"""Relay one conversational turn from the generation service to the client.

The upstream feed is consumed strictly in arrival order: text deltas are
forwarded live, thinking is dropped, and the build-page tool input is
buffered until the feed ends. Every run ends with exactly one `done` or
`error` event.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field

import httpx

from core.config import Settings
from core.exceptions import UpstreamStatusError
from schemas.chat_streaming import (
    ConversationTurn,
    RelayEvent,
    RelayResult,
    StreamFragment,
)
from services.relay.parser import SseLineBuffer, parse_artifact, parse_fragment
from services.relay.prompt import (
    BUILD_PAGE_TOOL_NAME,
    build_request_headers,
    build_request_payload,
)


logger = logging.getLogger(__name__)

ClientFactory = Callable[..., httpx.AsyncClient]

THINKING_STATUS = "Thinking..."
BUILDING_STATUS = "Building page..."
DEFAULT_ARTIFACT_MESSAGE = "Your page is ready to preview."


@dataclass
class ToolAccumulator:
    """Partial-JSON input of one tool call, in arrival order."""

    name: str
    parts: list[str] = field(default_factory=list)

    @property
    def raw_input(self) -> str:
        return "".join(self.parts)


@dataclass
class RelayState:
    """Mutable accumulators for one relay run."""

    narrative: list[str] = field(default_factory=list)
    # Ordered by start; input deltas always extend the last one
    tools: list[ToolAccumulator] = field(default_factory=list)
    thinking_announced: bool = False
    building: bool = False

    def apply(self, fragment: StreamFragment) -> RelayEvent | None:
        """Fold one fragment into the state; return the event to forward, if any."""
        kind, text, name = fragment.kind, fragment.text, fragment.name

        if kind == "text-delta":
            # Prose after the page build starts is not part of the reply
            if self.building or not text:
                return None
            self.narrative.append(text)
            return RelayEvent.text(text)

        if kind == "tool-input-delta":
            if self.tools:
                self.tools[-1].parts.append(text)
            return None

        if kind == "tool-start":
            self.tools.append(ToolAccumulator(name=name or ""))
            if name == BUILD_PAGE_TOOL_NAME and not self.building:
                self.building = True
                return RelayEvent.status(BUILDING_STATUS)
            return None

        if kind == "thinking-start" and not self.thinking_announced:
            self.thinking_announced = True
            return RelayEvent.status(THINKING_STATUS)

        return None

    def result(self) -> RelayResult:
        message = "".join(self.narrative).strip()
        artifact = None
        page_call = next(
            (t for t in reversed(self.tools) if t.name == BUILD_PAGE_TOOL_NAME), None
        )
        if page_call is not None:
            artifact = parse_artifact(page_call.raw_input)
        if not message and artifact is not None:
            message = DEFAULT_ARTIFACT_MESSAGE
        return RelayResult(message=message, artifact=artifact)


def describe_failure(exc: Exception) -> str:
    """Convert relay failures into messages the admin UI can show as-is."""
    if isinstance(exc, httpx.TimeoutException):
        return (
            "The AI service took too long to respond. "
            "Please try a simpler request or try again later."
        )
    if isinstance(exc, httpx.TransportError):
        return (
            "There was a network issue connecting to the AI service. "
            "Please try again."
        )
    if isinstance(exc, UpstreamStatusError):
        if exc.status_code == 429:
            return "Too many requests to the AI service. Please wait a minute."
        if exc.status_code in {500, 502, 503, 529}:
            return (
                "The AI service is currently overloaded. "
                "Please wait a moment and try again."
            )
        if exc.status_code in {401, 403}:
            return "The AI service rejected our credentials. Check the API key."
        return f"The AI service rejected the request ({exc.status_code})."

    exc_str = str(exc).lower()
    if "overloaded" in exc_str:
        return (
            "The AI service is currently overloaded. "
            "Please wait a moment and try again."
        )
    logger.error("Unhandled relay error: %s", type(exc).__name__)
    return "Something went wrong while generating a reply. Please try again."


def _upstream_error_message(body: bytes) -> str:
    try:
        payload = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return body[:200].decode("utf-8", errors="replace") or "no details"
    error = payload.get("error") if isinstance(payload, dict) else None
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])[:200]
    return "no details"


class StreamRelay:
    """Consumes the generation service feed and emits normalized relay events."""

    def __init__(
        self,
        settings: Settings,
        client_factory: ClientFactory = httpx.AsyncClient,
    ) -> None:
        self._settings = settings
        self._client_factory = client_factory

    async def stream(self, turn: ConversationTurn) -> AsyncIterator[RelayEvent]:
        """Yield status/text events, then exactly one `done` or `error` event."""
        state = RelayState()
        try:
            async for event in self._pump(turn, state):
                yield event
            result = state.result()
        except Exception as exc:
            logger.warning("Relay failed: %s", type(exc).__name__, exc_info=True)
            yield RelayEvent.error(describe_failure(exc))
            return

        logger.info(
            "Relay finished: %d chars, artifact=%s, tool calls=%d",
            len(result.message),
            result.artifact is not None,
            len(state.tools),
        )
        yield RelayEvent.done(result)

    async def collect(self, turn: ConversationTurn) -> RelayEvent:
        """Drain the stream and return its terminal event."""
        terminal = RelayEvent.error("The relay ended without a result.")
        async for event in self.stream(turn):
            if event.is_terminal:
                terminal = event
        return terminal

    async def _pump(
        self, turn: ConversationTurn, state: RelayState
    ) -> AsyncIterator[RelayEvent]:
        settings = self._settings
        lines = SseLineBuffer()

        async with self._client_factory(timeout=settings.HTTP_TIMEOUT_SECONDS) as client:
            async with client.stream(
                "POST",
                settings.ANTHROPIC_API_URL,
                json=build_request_payload(turn, settings),
                headers=build_request_headers(settings),
            ) as response:
                if not response.is_success:
                    body = await response.aread()
                    raise UpstreamStatusError(
                        response.status_code, _upstream_error_message(body)
                    )

                async for chunk in response.aiter_text():
                    for line in lines.feed(chunk):
                        event = self._dispatch(line, state)
                        if event is not None:
                            yield event

                for line in lines.flush():
                    event = self._dispatch(line, state)
                    if event is not None:
                        yield event

    @staticmethod
    def _dispatch(line: str, state: RelayState) -> RelayEvent | None:
        fragment = parse_fragment(line)
        if fragment is None:
            return None
        return state.apply(fragment)
