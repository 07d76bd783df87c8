"""MCP tool server for intro path discovery."""

from .server import init_server, mcp

__all__ = ["init_server", "mcp"]
