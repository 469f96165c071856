"""Tests for the streaming relay against a mocked generation service."""

from __future__ import annotations

import json
from collections.abc import AsyncIterator, Callable
from typing import Any
from unittest.mock import patch

import httpx
import pytest

from conftest import make_settings
from core.exceptions import UpstreamStatusError
from schemas.chat_streaming import (
    ConversationTurn,
    EditContext,
    RelayEvent,
    StreamFragment,
)
from services.relay import StreamRelay, describe_failure
from services.relay.stream import (
    BUILDING_STATUS,
    DEFAULT_ARTIFACT_MESSAGE,
    THINKING_STATUS,
    RelayState,
)


def text_delta(text: str) -> dict[str, Any]:
    return {
        "type": "content_block_delta",
        "index": 0,
        "delta": {"type": "text_delta", "text": text},
    }


def tool_start(name: str = "build_page", index: int = 1) -> dict[str, Any]:
    return {
        "type": "content_block_start",
        "index": index,
        "content_block": {"type": "tool_use", "id": f"tool_{index}", "name": name, "input": {}},
    }


def tool_input(partial: str, index: int = 1) -> dict[str, Any]:
    return {
        "type": "content_block_delta",
        "index": index,
        "delta": {"type": "input_json_delta", "partial_json": partial},
    }


def feed(*events: dict[str, Any]) -> str:
    return "".join(
        f"event: {event['type']}\ndata: {json.dumps(event)}\n\n" for event in events
    )


def relay_for(
    handler: Callable[[httpx.Request], httpx.Response], **overrides: Any
) -> StreamRelay:
    def factory(**kwargs: Any) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler), **kwargs)

    return StreamRelay(make_settings(**overrides), client_factory=factory)


def answering(body: str, status_code: int = 200) -> Callable[[httpx.Request], httpx.Response]:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            status_code,
            content=body.encode(),
            headers={"content-type": "text/event-stream"},
        )

    return handler


async def run(relay: StreamRelay, message: str = "Hello") -> list[RelayEvent]:
    return [event async for event in relay.stream(ConversationTurn(message=message))]


@pytest.mark.asyncio
class TestStreamRelay:
    """End-to-end relay behavior over a mocked upstream feed."""

    async def test_plain_text_reply(self) -> None:
        relay = relay_for(answering(feed(text_delta("Hi "), text_delta("there"))))

        events = await run(relay)

        assert [e.event for e in events] == ["text", "text", "done"]
        assert [e.data["text"] for e in events[:2]] == ["Hi ", "there"]
        assert events[-1].data == {"message": "Hi there", "artifact": None}

    async def test_build_page_tool_produces_artifact(self) -> None:
        body = feed(
            text_delta("Here is your page."),
            tool_start(),
            tool_input('{"path": "/reci'),
            tool_input('pes", "body": "<h1>Recipes</h1>"}'),
        )
        events = await run(relay_for(answering(body)))

        assert [e.event for e in events] == ["text", "status", "done"]
        assert events[1].data == {"text": BUILDING_STATUS}
        assert events[-1].data == {
            "message": "Here is your page.",
            "artifact": {"path": "/recipes", "body": "<h1>Recipes</h1>"},
        }

    async def test_malformed_tool_input_omits_artifact_without_error(self) -> None:
        body = feed(text_delta("Trying."), tool_start(), tool_input('{"path": "/x", "bo'))
        events = await run(relay_for(answering(body)))

        assert events[-1].event == "done"
        assert events[-1].data == {"message": "Trying.", "artifact": None}

    async def test_deeply_nested_tool_input_still_finishes(self) -> None:
        body = feed(text_delta("Working."), tool_start(), tool_input("[" * 200_000))
        events = await run(relay_for(answering(body)))

        assert [e.event for e in events] == ["text", "status", "done"]
        assert events[-1].data == {"message": "Working.", "artifact": None}

    async def test_failure_while_assembling_result_yields_error(self) -> None:
        body = feed(text_delta("Working."), tool_start(), tool_input("{}"))
        with patch(
            "services.relay.stream.parse_artifact", side_effect=RuntimeError("boom")
        ):
            events = await run(relay_for(answering(body)))

        assert [e.event for e in events] == ["text", "status", "error"]

    async def test_artifact_without_text_gets_default_message(self) -> None:
        body = feed(tool_start(), tool_input('{"path": "/", "body": "<p></p>"}'))
        events = await run(relay_for(answering(body)))

        assert events[-1].data["message"] == DEFAULT_ARTIFACT_MESSAGE
        assert events[-1].data["artifact"] == {"path": "/", "body": "<p></p>"}

    async def test_text_after_build_starts_is_not_forwarded(self) -> None:
        body = feed(
            text_delta("Before."),
            tool_start(),
            tool_input('{"path": "/", "body": "<p></p>"}'),
            text_delta(" After."),
        )
        events = await run(relay_for(answering(body)))

        texts = [e.data["text"] for e in events if e.event == "text"]
        assert texts == ["Before."]
        assert events[-1].data["message"] == "Before."

    async def test_thinking_announced_once_and_never_forwarded(self) -> None:
        thinking_start = {
            "type": "content_block_start",
            "index": 0,
            "content_block": {"type": "thinking", "thinking": ""},
        }
        thinking_delta = {
            "type": "content_block_delta",
            "index": 0,
            "delta": {"type": "thinking_delta", "thinking": "secret plan"},
        }
        body = feed(thinking_start, thinking_delta, thinking_start, text_delta("Done"))
        events = await run(relay_for(answering(body)))

        assert [e.event for e in events] == ["status", "text", "done"]
        assert events[0].data == {"text": THINKING_STATUS}
        assert "secret plan" not in json.dumps([e.data for e in events])

    async def test_lines_split_across_network_chunks(self) -> None:
        body = feed(text_delta("Hi "), text_delta("there")).encode()

        async def chunks() -> AsyncIterator[bytes]:
            for start in range(0, len(body), 7):
                yield body[start : start + 7]

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=chunks())

        events = await run(relay_for(handler))
        assert events[-1].data == {"message": "Hi there", "artifact": None}

    async def test_final_line_without_newline_is_processed(self) -> None:
        body = feed(text_delta("Hi")) + "data: " + json.dumps(text_delta("!"))
        events = await run(relay_for(answering(body)))
        assert events[-1].data["message"] == "Hi!"

    async def test_non_success_status_yields_single_error(self) -> None:
        body = json.dumps({"type": "error", "error": {"type": "rate_limit_error", "message": "slow"}})
        events = await run(relay_for(answering(body, status_code=429)))

        assert len(events) == 1
        assert events[0].event == "error"
        assert "Too many requests" in events[0].data["message"]

    async def test_error_event_mid_stream_ends_with_error(self) -> None:
        error = {"type": "error", "error": {"type": "overloaded_error", "message": "Overloaded"}}
        body = feed(text_delta("Partial"), error, text_delta(" never"))
        events = await run(relay_for(answering(body)))

        assert [e.event for e in events] == ["text", "error"]
        assert "overloaded" in events[-1].data["message"]

    async def test_transport_failure_yields_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        events = await run(relay_for(handler))

        assert len(events) == 1
        assert events[0].event == "error"
        assert "network issue" in events[0].data["message"]

    @pytest.mark.parametrize(
        "body",
        [
            feed(text_delta("ok")),
            feed(tool_start(), tool_input("{")),
            "data: {not json}\n\n",
            "",
        ],
    )
    async def test_exactly_one_terminal_event_and_it_is_last(self, body: str) -> None:
        events = await run(relay_for(answering(body)))

        terminal = [e for e in events if e.is_terminal]
        assert len(terminal) == 1
        assert events[-1] is terminal[0]

    async def test_request_carries_model_tool_and_edit_context(self) -> None:
        captured: dict[str, Any] = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["headers"] = request.headers
            captured["payload"] = json.loads(request.content)
            return httpx.Response(200, content=feed(text_delta("ok")).encode())

        relay = relay_for(handler, ANTHROPIC_MODEL="test-model", ANTHROPIC_MAX_TOKENS=1024)
        turn = ConversationTurn(
            message="Make the title bigger",
            history=[{"role": "user", "content": "hi"}, {"role": "assistant", "content": "hello"}],
            context=EditContext(mode="edit", path="/recipes", current_source="<h1>Old</h1>"),
        )
        [event async for event in relay.stream(turn)]

        payload = captured["payload"]
        assert payload["model"] == "test-model"
        assert payload["max_tokens"] == 1024
        assert payload["stream"] is True
        assert [tool["name"] for tool in payload["tools"]] == ["build_page"]
        assert "thinking" not in payload
        assert [m["role"] for m in payload["messages"]] == ["user", "assistant", "user"]
        assert payload["messages"][-1]["content"] == (
            "[EDITING PAGE: /recipes]\n"
            "[CURRENT HTML SOURCE]:\n<h1>Old</h1>\n\n"
            "[USER REQUEST]: Make the title bigger"
        )
        assert captured["headers"]["x-api-key"] == "test-anthropic-key"
        assert captured["headers"]["anthropic-version"] == "2023-06-01"

    async def test_thinking_budget_requests_extended_thinking(self) -> None:
        captured: dict[str, Any] = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["payload"] = json.loads(request.content)
            return httpx.Response(200, content=b"")

        await run(relay_for(handler, ANTHROPIC_THINKING_BUDGET=2048))

        assert captured["payload"]["thinking"] == {"type": "enabled", "budget_tokens": 2048}

    async def test_collect_returns_terminal_event(self) -> None:
        relay = relay_for(answering(feed(text_delta("Hi"))))
        terminal = await relay.collect(ConversationTurn(message="Hello"))
        assert terminal.event == "done"
        assert terminal.data["message"] == "Hi"


class TestRelayState:
    """Fragment folding without any I/O."""

    def test_only_last_build_page_call_counts(self) -> None:
        state = RelayState()
        state.apply(StreamFragment(kind="tool-start", name="build_page"))
        state.apply(StreamFragment(kind="tool-input-delta", text='{"path": "/a", "body": "1"}'))
        state.apply(StreamFragment(kind="tool-start", name="build_page"))
        state.apply(StreamFragment(kind="tool-input-delta", text='{"path": "/b", "body": "2"}'))

        result = state.result()
        assert result.artifact is not None
        assert result.artifact.path == "/b"

    def test_building_status_emitted_once(self) -> None:
        state = RelayState()
        first = state.apply(StreamFragment(kind="tool-start", name="build_page"))
        second = state.apply(StreamFragment(kind="tool-start", name="build_page"))
        assert first is not None and first.data == {"text": BUILDING_STATUS}
        assert second is None

    def test_input_delta_before_any_tool_is_ignored(self) -> None:
        state = RelayState()
        assert state.apply(StreamFragment(kind="tool-input-delta", text="{}")) is None
        assert state.result().artifact is None

    def test_other_tools_do_not_produce_artifacts(self) -> None:
        state = RelayState()
        state.apply(StreamFragment(kind="tool-start", name="lookup"))
        state.apply(StreamFragment(kind="tool-input-delta", text='{"path": "/", "body": "x"}'))
        assert state.result().artifact is None
        assert state.building is False


class TestDescribeFailure:
    """User-facing messages for relay failures."""

    def test_timeout(self) -> None:
        assert "too long" in describe_failure(httpx.ReadTimeout("slow"))

    def test_overloaded_status(self) -> None:
        assert "overloaded" in describe_failure(UpstreamStatusError(529, "Overloaded"))

    def test_auth_status(self) -> None:
        assert "credentials" in describe_failure(UpstreamStatusError(401, "bad key"))

    def test_other_status_mentions_code(self) -> None:
        assert "400" in describe_failure(UpstreamStatusError(400, "bad request"))

    def test_unknown_error_is_generic(self) -> None:
        message = describe_failure(RuntimeError("secret=abc"))
        assert "secret" not in message
        assert "try again" in message
