"""Blogroll: a feed synchronization engine served over MCP."""

__version__ = "0.1.0"
