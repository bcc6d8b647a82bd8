"""MCP server that lets other agents launch and manage dispatch agents."""

__all__ = ["server", "tools"]
