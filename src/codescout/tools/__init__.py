"""Agent tools for exploring the codebase."""

from codescout.tools.registry import ToolRegistry
from codescout.tools.definitions import (
    FINISH_TOOL,
    ScoutTools,
    format_tool_call,
    get_scout_tools,
    get_tool_definitions,
)

__all__ = [
    "FINISH_TOOL",
    "ScoutTools",
    "ToolRegistry",
    "format_tool_call",
    "get_scout_tools",
    "get_tool_definitions",
]
