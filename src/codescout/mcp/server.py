"""MCP Server: expose codescout retrieval via the Model Context Protocol.

Implements the MCP protocol (JSON-RPC 2.0 over stdio) directly, without an
MCP SDK dependency. Clients call the `scout` tool with one to five queries
and receive the budgeted retrieval artifact as text.

Protocol reference: https://modelcontextprotocol.io/specification
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

from codescout import __version__
from codescout.config import find_project_root, load_config
from codescout.orchestrator import Scout

logger = logging.getLogger("codescout.mcp")


class MCPServer:
    """Model Context Protocol server exposing the scout tool."""

    PROTOCOL_VERSION = "2024-11-05"
    SERVER_NAME = "codescout"
    SERVER_VERSION = __version__

    def __init__(self, root: Path | None = None, scout: Scout | None = None) -> None:
        self.root = root or find_project_root() or Path.cwd()
        self._scout = scout
        self._tools = self._define_tools()

    def _ensure_scout(self) -> Scout:
        """Lazy-create the orchestrator so `initialize` works without an API key."""
        if self._scout is None:
            self._scout = Scout(self.root, load_config(self.root))
        return self._scout

    def _define_tools(self) -> list[dict]:
        return [
            {
                "name": "scout",
                "description": (
                    "Find the code relevant to one or more questions about this "
                    "repository. Runs one exploration agent per query and returns "
                    "a summary plus the selected code, packed into a token budget."
                ),
                "inputSchema": {
                    "type": "object",
                    "properties": {
                        "queries": {
                            "type": "array",
                            "minItems": 1,
                            "maxItems": 5,
                            "items": {
                                "type": "object",
                                "properties": {
                                    "query": {
                                        "type": "string",
                                        "description": "What to find, in natural language",
                                    },
                                    "hints": {
                                        "type": "string",
                                        "description": "Comma-separated keywords to seed search",
                                    },
                                },
                                "required": ["query"],
                            },
                        },
                    },
                    "required": ["queries"],
                },
            },
        ]

    # =========================================================================
    # Tool Implementations
    # =========================================================================

    async def _handle_tool_call(self, name: str, arguments: dict) -> tuple[str, bool]:
        """Execute a tool. Returns (text, is_error)."""
        if name == "scout":
            return await self._tool_scout(arguments)
        raise ValueError(f"Unknown tool: {name}")

    async def _tool_scout(self, args: dict) -> tuple[str, bool]:
        queries = args.get("queries")
        if isinstance(queries, str):
            queries = json.loads(queries)
        if not isinstance(queries, list):
            raise ValueError("'queries' must be an array of {query, hints?} objects")

        result = await self._ensure_scout().run(queries)
        return result.text, result.is_error

    # =========================================================================
    # MCP Protocol Implementation (JSON-RPC 2.0 over stdio)
    # =========================================================================

    async def run_stdio(self) -> None:
        """Run the MCP server over stdio (the standard transport)."""
        loop = asyncio.get_running_loop()
        reader = asyncio.StreamReader()
        protocol = asyncio.StreamReaderProtocol(reader)
        await loop.connect_read_pipe(lambda: protocol, sys.stdin.buffer)

        writer_transport, writer_protocol = await loop.connect_write_pipe(
            asyncio.streams.FlowControlMixin, sys.stdout.buffer
        )
        writer = asyncio.StreamWriter(writer_transport, writer_protocol, None, loop)

        logger.info("codescout MCP server started (stdio transport) in %s", self.root)

        while True:
            try:
                message = await self._read_message(reader)
                if message is None:
                    break
                response = await self._handle_message(message)
                if response is not None:
                    await self._write_message(writer, response)
            except (asyncio.IncompleteReadError, json.JSONDecodeError, ValueError) as e:
                logger.error("Error handling message: %s", e)
                break

        logger.info("MCP server shutting down")

    async def _read_message(self, reader: asyncio.StreamReader) -> dict | None:
        """Read a JSON-RPC message with Content-Length header."""
        content_length = 0
        while True:
            line = await reader.readline()
            if not line:
                return None
            line = line.decode("utf-8").strip()
            if not line:
                break  # End of headers
            if line.lower().startswith("content-length:"):
                content_length = int(line.split(":")[1].strip())

        if content_length == 0:
            return None

        body = await reader.readexactly(content_length)
        return json.loads(body.decode("utf-8"))

    async def _write_message(self, writer: asyncio.StreamWriter, message: dict) -> None:
        """Write a JSON-RPC response with Content-Length header."""
        body = json.dumps(message).encode("utf-8")
        header = f"Content-Length: {len(body)}\r\n\r\n".encode()
        writer.write(header + body)
        await writer.drain()

    async def _handle_message(self, message: dict) -> dict | None:
        """Route a JSON-RPC message to the appropriate handler."""
        method = message.get("method", "")
        msg_id = message.get("id")
        params = message.get("params") or {}

        # Notifications (no id) don't get responses
        if msg_id is None:
            self._handle_notification(method, params)
            return None

        try:
            result = await self._dispatch(method, params)
            return {"jsonrpc": "2.0", "id": msg_id, "result": result}
        except Exception as e:
            return {
                "jsonrpc": "2.0",
                "id": msg_id,
                "error": {"code": -32603, "message": str(e)},
            }

    def _handle_notification(self, method: str, params: dict) -> None:
        if method == "notifications/initialized":
            logger.info("Client initialized")
        elif method == "notifications/cancelled":
            logger.info("Request cancelled: %s", params.get("requestId"))

    async def _dispatch(self, method: str, params: dict) -> Any:
        """Dispatch a JSON-RPC method to its handler."""
        if method == "initialize":
            return self._rpc_initialize(params)
        elif method == "tools/list":
            return {"tools": self._tools}
        elif method == "tools/call":
            return await self._rpc_tools_call(params)
        elif method == "ping":
            return {}
        else:
            raise ValueError(f"Unknown method: {method}")

    def _rpc_initialize(self, params: dict) -> dict:
        """Handle the initialize handshake."""
        return {
            "protocolVersion": self.PROTOCOL_VERSION,
            "capabilities": {"tools": {"listChanged": False}},
            "serverInfo": {
                "name": self.SERVER_NAME,
                "version": self.SERVER_VERSION,
            },
        }

    async def _rpc_tools_call(self, params: dict) -> dict:
        """Call a tool and return the result."""
        name = params.get("name", "")
        arguments = params.get("arguments") or {}

        try:
            text, is_error = await self._handle_tool_call(name, arguments)
        except Exception as e:
            return {
                "content": [{"type": "text", "text": f"Error: {e}"}],
                "isError": True,
            }
        return {"content": [{"type": "text", "text": text}], "isError": is_error}

    # =========================================================================
    # MCP Config Generators
    # =========================================================================

    @staticmethod
    def generate_claude_config(project_path: str | None = None) -> dict:
        """Generate an MCP server entry for Claude-style clients."""
        return {
            "codescout": {
                "command": "codescout",
                "args": ["serve", "--transport", "stdio"],
                "cwd": project_path or ".",
            }
        }

    @staticmethod
    def generate_cursor_config(project_path: str | None = None) -> dict:
        """Generate MCP config for Cursor (.cursor/mcp.json)."""
        return {
            "mcpServers": {
                "codescout": {
                    "command": "codescout",
                    "args": ["serve", "--transport", "stdio"],
                    "cwd": project_path or ".",
                }
            }
        }
