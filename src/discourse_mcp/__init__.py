"""MCP server exposing read-only Discourse forum operations with per-session state."""

__version__ = "1.0.0"
