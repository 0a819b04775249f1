"""MCP client and tool wrapper."""
