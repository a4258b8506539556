"""
MCP server for Warden.

Exposes rule-based analysis to LLMs via the Model Context Protocol.

Tools:
    - warden_check: Analyze a file or directory and return findings
    - warden_rules: List the rule set with its effective settings

Usage:
    Run: warden-mcp
"""

import asyncio

from warden.mcp.server import serve as _serve


def serve() -> None:
    """Entry point for the MCP server."""
    asyncio.run(_serve())


__all__ = ["serve"]
