"""Tabular data plugin: schema discovery and typed publishing over MCP."""
