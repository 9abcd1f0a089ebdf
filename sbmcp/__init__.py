"""SilverBullet MCP bridge.

Serves the notes of a SilverBullet space to Model Context Protocol clients
over streamable HTTP.
"""

__version__ = "0.1.0"
