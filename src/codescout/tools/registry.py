"""Tool registry for agent tools."""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Callable

from codescout.llm.base import ToolDefinition
from codescout.tools.coercion import coerce_object

logger = logging.getLogger("codescout.tools")


class ToolRegistry:
    """Registry that manages the tools an exploration agent can call.

    Execution never raises: failures come back as bracketed strings that
    are fed to the model so it can route around them.
    """

    def __init__(self, timeout_s: float = 30.0) -> None:
        self.timeout_s = timeout_s
        self._tools: dict[str, Callable] = {}
        self._definitions: dict[str, ToolDefinition] = {}

    def register(self, func: Callable, definition: ToolDefinition) -> None:
        """Register a tool function with its definition."""
        self._tools[definition.name] = func
        self._definitions[definition.name] = definition

    def get_definitions(self) -> list[ToolDefinition]:
        """Definitions of every registered tool, in registration order."""
        return list(self._definitions.values())

    def list_tools(self) -> list[str]:
        return list(self._tools.keys())

    async def execute(self, name: str, arguments: dict[str, Any]) -> str:
        """Execute a tool by name. Blocking tools run in a worker thread."""
        func = self._tools.get(name)
        if func is None:
            return f"[Unknown tool: {name}]"

        kwargs = coerce_object(arguments)
        try:
            if inspect.iscoroutinefunction(func):
                call = func(**kwargs)
            else:
                call = asyncio.to_thread(func, **kwargs)
            result = await asyncio.wait_for(call, self.timeout_s)
            return str(result) if result is not None else "Done."
        except asyncio.TimeoutError:
            return f"[{name} error: timed out after {self.timeout_s:g}s]"
        except Exception as e:
            logger.warning("Tool %s failed: %s", name, e)
            return f"[{name} error: {e}]"
