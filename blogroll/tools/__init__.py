"""MCP tools for blogroll."""
