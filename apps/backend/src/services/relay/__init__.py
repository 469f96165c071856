"""Streaming relay between the generation service and the admin front end."""

from .prompt import BUILD_PAGE_TOOL, BUILD_PAGE_TOOL_NAME, SYSTEM_PROMPT
from .stream import StreamRelay, describe_failure


__all__ = [
    "BUILD_PAGE_TOOL",
    "BUILD_PAGE_TOOL_NAME",
    "SYSTEM_PROMPT",
    "StreamRelay",
    "describe_failure",
]
