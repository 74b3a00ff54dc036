"""MCP server exposing the synchronization engine over stdio."""
