"""MCP protocol layer: JSON-RPC engine, capability negotiation and routing."""
