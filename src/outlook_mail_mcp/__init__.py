"""Outlook Mail MCP - MCP server for Outlook mail via Microsoft Graph.

Features:
- Progressive search that falls back to simpler Graph queries
- Cursor-following pagination with result caps
- Delta sync with caller-held tokens

Usage:
    outlook-mail-mcp            # Run MCP server (default)
    outlook-mail-mcp status     # Show configuration
"""

from .cli import main
from .server import mcp

__all__ = ["main", "mcp"]
