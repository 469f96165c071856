"""Unit tests for incremental feed parsing."""

from __future__ import annotations

import json

import pytest

from core.exceptions import UpstreamStreamError
from schemas.chat_streaming import StreamFragment
from services.relay.parser import (
    SseLineBuffer,
    extract_data,
    parse_artifact,
    parse_fragment,
)


def data_line(payload: dict) -> str:
    return f"data: {json.dumps(payload)}"


class TestSseLineBuffer:
    """Lines split across chunks must be reassembled before parsing."""

    def test_line_split_across_chunks_is_carried_over(self) -> None:
        buffer = SseLineBuffer()
        line = data_line(
            {"type": "content_block_delta", "delta": {"type": "text_delta", "text": "Hi"}}
        )
        head, tail = line[:17], line[17:]

        assert buffer.feed(head) == []
        assert buffer.feed(tail + "\n") == [line]

    def test_multiple_lines_in_one_chunk(self) -> None:
        buffer = SseLineBuffer()
        assert buffer.feed("event: ping\ndata: {}\n\n") == ["event: ping", "data: {}", ""]

    def test_crlf_line_endings_are_stripped(self) -> None:
        buffer = SseLineBuffer()
        assert buffer.feed("data: a\r\ndata: b\r") == ["data: a"]
        assert buffer.flush() == ["data: b"]

    def test_flush_returns_trailing_partial_line_once(self) -> None:
        buffer = SseLineBuffer()
        buffer.feed("data: [DONE]")
        assert buffer.flush() == ["data: [DONE]"]
        assert buffer.flush() == []


class TestParseFragment:
    """Classification of single feed lines."""

    def test_non_data_lines_are_skipped(self) -> None:
        assert extract_data("event: content_block_delta") is None
        assert parse_fragment("event: content_block_delta") is None
        assert parse_fragment("") is None

    def test_end_of_stream_sentinel_is_skipped(self) -> None:
        assert parse_fragment("data: [DONE]") is None

    def test_malformed_json_is_dropped(self) -> None:
        assert parse_fragment('data: {"type": "content_block_delta", ') is None

    def test_non_object_payload_is_dropped(self) -> None:
        assert parse_fragment("data: [1, 2, 3]") is None

    def test_deeply_nested_payload_is_dropped(self) -> None:
        assert parse_fragment("data: " + "[" * 200_000) is None

    def test_text_delta(self) -> None:
        fragment = parse_fragment(
            data_line(
                {
                    "type": "content_block_delta",
                    "index": 0,
                    "delta": {"type": "text_delta", "text": "Hello"},
                }
            )
        )
        assert fragment == StreamFragment(kind="text-delta", text="Hello")

    def test_tool_start_carries_name(self) -> None:
        fragment = parse_fragment(
            data_line(
                {
                    "type": "content_block_start",
                    "index": 1,
                    "content_block": {"type": "tool_use", "id": "t1", "name": "build_page"},
                }
            )
        )
        assert fragment == StreamFragment(kind="tool-start", name="build_page")

    def test_tool_input_delta(self) -> None:
        fragment = parse_fragment(
            data_line(
                {
                    "type": "content_block_delta",
                    "delta": {"type": "input_json_delta", "partial_json": '{"pa'},
                }
            )
        )
        assert fragment == StreamFragment(kind="tool-input-delta", text='{"pa')

    def test_thinking_start_and_delta(self) -> None:
        start = parse_fragment(
            data_line({"type": "content_block_start", "content_block": {"type": "thinking"}})
        )
        delta = parse_fragment(
            data_line(
                {
                    "type": "content_block_delta",
                    "delta": {"type": "thinking_delta", "thinking": "hmm"},
                }
            )
        )
        assert start is not None and start.kind == "thinking-start"
        # Thinking text is never carried forward
        assert delta == StreamFragment(kind="thinking-delta")

    @pytest.mark.parametrize(
        "payload",
        [
            {"type": "message_start", "message": {"id": "m1"}},
            {"type": "content_block_stop", "index": 0},
            {"type": "ping"},
            {"type": "message_delta", "delta": {"stop_reason": "end_turn"}},
            {"type": "content_block_start", "content_block": {"type": "text", "text": ""}},
        ],
    )
    def test_other_events_are_ignored(self, payload: dict) -> None:
        fragment = parse_fragment(data_line(payload))
        assert fragment is not None
        assert fragment.kind == "ignored"

    def test_error_event_raises(self) -> None:
        with pytest.raises(UpstreamStreamError, match="overloaded_error: Overloaded"):
            parse_fragment(
                data_line(
                    {
                        "type": "error",
                        "error": {"type": "overloaded_error", "message": "Overloaded"},
                    }
                )
            )


class TestParseArtifact:
    """Accumulated build-page input becomes an artifact or nothing."""

    def test_valid_input(self) -> None:
        artifact = parse_artifact('{"path": "/recipes", "body": "<html></html>"}')
        assert artifact is not None
        assert artifact.path == "/recipes"
        assert artifact.body == "<html></html>"

    def test_html_field_is_accepted_for_body(self) -> None:
        artifact = parse_artifact('{"path": "/", "html": "<p>hi</p>"}')
        assert artifact is not None
        assert artifact.body == "<p>hi</p>"

    def test_truncated_json_yields_none(self) -> None:
        assert parse_artifact('{"path": "/recipes", "body": "<ht') is None

    def test_empty_input_yields_none(self) -> None:
        assert parse_artifact("") is None

    def test_deeply_nested_input_yields_none(self) -> None:
        assert parse_artifact("[" * 200_000) is None

    def test_non_string_fields_yield_none(self) -> None:
        assert parse_artifact('{"path": 3, "body": "<p></p>"}') is None
        assert parse_artifact('{"path": "/"}') is None

    def test_non_object_yields_none(self) -> None:
        assert parse_artifact('["/", "<p></p>"]') is None
