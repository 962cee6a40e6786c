"""
Integrations Module - External Tool Sources
===========================================

Modules:
    mcp_tools: Loads tools from an MCP server over streamable HTTP

MCP Tools (mcp_tools.py):
    Connects to a Model Context Protocol server URL, lists its tools and wraps
    each as a registry-compatible Tool whose executor opens a session and calls
    the remote tool. Tool metadata is cached per URL. Connection failures raise
    MCPError, which the turn executor degrades to a tool-less conversation.
"""
