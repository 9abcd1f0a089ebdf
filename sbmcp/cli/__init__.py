"""Command-line interface for the SilverBullet MCP bridge."""
