"""MCP handler exposing SilverBullet notes as tools and resources."""

from sbmcp.mcp.server import HandlerContext, build_server, dispatch_tool
from sbmcp.mcp.tools import TOOL_SCHEMAS

__all__ = [
    "HandlerContext",
    "TOOL_SCHEMAS",
    "build_server",
    "dispatch_tool",
]
