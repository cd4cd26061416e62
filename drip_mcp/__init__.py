"""Drip MCP — Drip marketing-automation API exposed as MCP tools."""

__version__ = "1.0.0"
