"""MCP server exposing reconciliation, sync and backup tools over stdio."""
