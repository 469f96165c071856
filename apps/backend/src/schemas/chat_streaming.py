"""Schemas for the chat relay and its SSE output stream."""

from __future__ import annotations

import json
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


RelayEventName = Literal["status", "text", "done", "error"]
TERMINAL_EVENTS: frozenset[str] = frozenset({"done", "error"})


class HistoryMessage(BaseModel):
    """One prior exchange in the conversation."""

    role: Literal["user", "assistant"]
    content: str

    model_config = ConfigDict(frozen=True)


class EditContext(BaseModel):
    """Page the user is editing, sent along with the message in edit mode."""

    mode: str
    path: str = "/"
    current_source: str | None = Field(default=None, alias="currentSource")

    model_config = ConfigDict(frozen=True, populate_by_name=True)


class ConversationTurn(BaseModel):
    """Prior history plus one new user message; immutable for one relay run."""

    message: str = Field(..., min_length=1)
    history: tuple[HistoryMessage, ...] = ()
    context: EditContext | None = None

    model_config = ConfigDict(frozen=True, extra="forbid")

    def user_content(self) -> str:
        """Return the user message, prefixed with edit instructions when editing."""
        ctx = self.context
        if ctx is None or ctx.mode != "edit" or not ctx.current_source:
            return self.message
        return (
            f"[EDITING PAGE: {ctx.path}]\n"
            f"[CURRENT HTML SOURCE]:\n{ctx.current_source}\n\n"
            f"[USER REQUEST]: {self.message}"
        )

    def to_messages(self) -> list[dict[str, str]]:
        """Ordered message list for the generation service."""
        messages = [{"role": h.role, "content": h.content} for h in self.history]
        messages.append({"role": "user", "content": self.user_content()})
        return messages


FragmentKind = Literal[
    "text-delta",
    "thinking-start",
    "thinking-delta",
    "tool-start",
    "tool-input-delta",
    "ignored",
]


class StreamFragment(BaseModel):
    """One classified event from the generation service feed."""

    kind: FragmentKind
    text: str = ""
    name: str | None = None

    model_config = ConfigDict(frozen=True)


class PageArtifact(BaseModel):
    """Structured page payload assembled from the build-page tool call."""

    path: str
    body: str


class RelayResult(BaseModel):
    """Final normalized result carried by the `done` event."""

    message: str
    artifact: PageArtifact | None = None


class RelayEvent(BaseModel):
    """One event on the relay's output stream."""

    event: RelayEventName
    data: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(extra="forbid")

    @property
    def is_terminal(self) -> bool:
        return self.event in TERMINAL_EVENTS

    @classmethod
    def status(cls, text: str) -> RelayEvent:
        return cls(event="status", data={"text": text})

    @classmethod
    def text(cls, text: str) -> RelayEvent:
        return cls(event="text", data={"text": text})

    @classmethod
    def done(cls, result: RelayResult) -> RelayEvent:
        return cls(event="done", data=result.model_dump())

    @classmethod
    def error(cls, message: str) -> RelayEvent:
        return cls(event="error", data={"message": message})

    def to_sse(self) -> str:
        """Serialize as a named SSE event."""
        return f"event: {self.event}\ndata: {json.dumps(self.data)}\n\n"
