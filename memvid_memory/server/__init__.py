"""
Servers: the stdio MCP tool server and the loopback host model bridge.
"""
