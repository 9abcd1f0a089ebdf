"""Transport layer for the bridge daemon.

Provides the streamable HTTP transport MCP clients connect to.
"""

from sbmcp.daemon.transports.http import HttpTransport

__all__ = [
    "HttpTransport",
]
