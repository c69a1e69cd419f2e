from __future__ import annotations

from .server import MCP_TOOLS, MCPError, handle_tool_call

__all__ = ["MCP_TOOLS", "MCPError", "handle_tool_call"]
