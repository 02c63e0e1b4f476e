"""
MCP (Model Context Protocol) procedure layer.
"""
from tinytask.mcp.functions import MCP_FUNCTIONS
from tinytask.mcp.request_handlers import handle_jsonrpc_request, call_tool

__all__ = ["MCP_FUNCTIONS", "handle_jsonrpc_request", "call_tool"]
