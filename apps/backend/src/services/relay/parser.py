"""Incremental parsing of the generation service's SSE feed.

The feed arrives in arbitrary byte chunks that do not line up with SSE
lines, so `SseLineBuffer` carries the trailing partial line over to the next
chunk. Each complete `data:` line is then classified into a `StreamFragment`.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from core.exceptions import UpstreamStreamError
from schemas.chat_streaming import PageArtifact, StreamFragment


logger = logging.getLogger(__name__)

DATA_PREFIX = "data:"
END_OF_STREAM_SENTINEL = "[DONE]"

IGNORED = StreamFragment(kind="ignored")


class SseLineBuffer:
    """Split a chunked text stream into complete lines."""

    def __init__(self) -> None:
        self._pending = ""

    def feed(self, chunk: str) -> list[str]:
        """Add a chunk and return every line it completed."""
        self._pending += chunk
        *lines, self._pending = self._pending.split("\n")
        return [line.removesuffix("\r") for line in lines]

    def flush(self) -> list[str]:
        """Return the trailing partial line, if any, at end of stream."""
        rest, self._pending = self._pending.removesuffix("\r"), ""
        return [rest] if rest else []


def extract_data(line: str) -> str | None:
    """Return the payload of a `data:` line, or None for any other line."""
    if not line.startswith(DATA_PREFIX):
        return None
    return line[len(DATA_PREFIX) :].strip()


def parse_fragment(line: str) -> StreamFragment | None:
    """Classify one SSE line.

    Returns None for lines outside the event sub-protocol, the end-of-stream
    sentinel and payloads that fail to parse.

    Raises:
        UpstreamStreamError: If the feed carries an `error` event
    """
    data = extract_data(line)
    if not data or data == END_OF_STREAM_SENTINEL:
        return None

    try:
        event = json.loads(data)
    except (ValueError, RecursionError):
        logger.debug("Dropping malformed feed line (%d chars)", len(data))
        return None
    if not isinstance(event, dict):
        return None

    return _classify(event)


def _classify(event: dict[str, Any]) -> StreamFragment:
    event_type = event.get("type")

    if event_type == "content_block_start":
        block = event.get("content_block") or {}
        block_type = block.get("type")
        if block_type == "tool_use":
            return StreamFragment(kind="tool-start", name=str(block.get("name") or ""))
        if block_type in {"thinking", "redacted_thinking"}:
            return StreamFragment(kind="thinking-start")
        return IGNORED

    if event_type == "content_block_delta":
        delta = event.get("delta") or {}
        delta_type = delta.get("type")
        if delta_type == "text_delta":
            return StreamFragment(kind="text-delta", text=str(delta.get("text", "")))
        if delta_type == "input_json_delta":
            return StreamFragment(
                kind="tool-input-delta", text=str(delta.get("partial_json", ""))
            )
        if delta_type == "thinking_delta":
            return StreamFragment(kind="thinking-delta")
        return IGNORED

    if event_type == "error":
        error = event.get("error") or {}
        raise UpstreamStreamError(
            f"{error.get('type', 'error')}: {error.get('message', 'stream error')}"
        )

    return IGNORED


def parse_artifact(raw_input: str) -> PageArtifact | None:
    """Parse an accumulated tool input into a page artifact.

    The body may be sent as `body` or, from older prompts, `html`. Anything
    that is not a JSON object with string `path` and body yields None.
    """
    try:
        payload = json.loads(raw_input)
    except (ValueError, RecursionError):
        logger.info("Build-page input did not parse; omitting artifact")
        return None
    if not isinstance(payload, dict):
        return None

    path = payload.get("path")
    body = payload.get("body", payload.get("html"))
    if not isinstance(path, str) or not isinstance(body, str):
        return None
    return PageArtifact(path=path, body=body)
