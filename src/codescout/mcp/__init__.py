"""MCP (Model Context Protocol) server for codescout.

Usage:
    codescout serve              # Start the MCP server
    codescout serve --transport stdio
"""

from codescout.mcp.server import MCPServer

__all__ = ["MCPServer"]
