"""Bridge daemon: session management and the HTTP transport MCP clients use."""

from sbmcp.daemon.registry import Session, SessionRegistry
from sbmcp.daemon.server import BridgeDaemon

__all__ = [
    "BridgeDaemon",
    "Session",
    "SessionRegistry",
]
