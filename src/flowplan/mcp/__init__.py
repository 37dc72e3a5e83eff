"""MCP binding for the flowchart tools."""
