"""Data models for the DocTree MCP server."""
