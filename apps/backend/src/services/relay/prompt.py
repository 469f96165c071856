"""System prompt and tool declaration sent with every relay request."""

from __future__ import annotations

from typing import Any

from core.config import Settings
from schemas.chat_streaming import ConversationTurn


BUILD_PAGE_TOOL_NAME = "build_page"

SYSTEM_PROMPT = """You are the admin assistant for a family website.

You help build and maintain the pages of the site. You work in two modes.

## EDIT MODE
The user message starts with [EDITING PAGE: <path>] and includes the current
HTML source of that page.
- Make targeted edits; keep the existing structure, styles and content unless
  asked to change them
- Keep the edit widget script: <script src="/shared/edit-widget.js"></script>
- Keep the "<- Dashboard" link
- Return the complete updated HTML, not a diff

## BUILD MODE
Without an edit context, build a complete self-contained page (HTML, CSS and
JS in one file).
- Font -apple-system/sans-serif, background #F5F0E8, text #2C2C2C, accent
  #2E6B8A, white cards with 12px border radius
- Include a "<- Dashboard" link back to /
- Include <script src="/shared/edit-widget.js"></script> before </body>
- Mobile-responsive, with realistic placeholder data

## SITE STRUCTURE
- / : family dashboard (main hub)
- /recipes : recipe collection
- /camp : summer camp tracker
- /admin : admin panel (never modify)

## OUTPUT
Reply conversationally in plain text first. Whenever you produce or change a
page, call the build_page tool exactly once with the target path and the full
HTML document. Do not paste HTML into the conversational reply. Keep replies
short and friendly."""


BUILD_PAGE_TOOL: dict[str, Any] = {
    "name": BUILD_PAGE_TOOL_NAME,
    "description": (
        "Emit a complete HTML page for the family site. Call once per reply, "
        "after the conversational text."
    ),
    "input_schema": {
        "type": "object",
        "properties": {
            "path": {
                "type": "string",
                "description": "Site path of the page, e.g. /recipes",
            },
            "body": {
                "type": "string",
                "description": "The complete HTML document",
            },
        },
        "required": ["path", "body"],
    },
}


def build_request_payload(turn: ConversationTurn, settings: Settings) -> dict[str, Any]:
    """Assemble the streaming Messages API request body for one turn."""
    payload: dict[str, Any] = {
        "model": settings.ANTHROPIC_MODEL,
        "max_tokens": settings.ANTHROPIC_MAX_TOKENS,
        "system": SYSTEM_PROMPT,
        "messages": turn.to_messages(),
        "tools": [BUILD_PAGE_TOOL],
        "stream": True,
    }
    if settings.ANTHROPIC_THINKING_BUDGET:
        payload["thinking"] = {
            "type": "enabled",
            "budget_tokens": settings.ANTHROPIC_THINKING_BUDGET,
        }
    return payload


def build_request_headers(settings: Settings) -> dict[str, str]:
    return {
        "Content-Type": "application/json",
        "Accept": "text/event-stream",
        "x-api-key": settings.ANTHROPIC_API_KEY or "",
        "anthropic-version": settings.ANTHROPIC_VERSION,
    }
