"""
MCP (Model Context Protocol) API routes.
"""
import logging
from typing import Any

from fastapi import APIRouter, Body
from fastapi.concurrency import run_in_threadpool

from tinytask.mcp.functions import MCP_FUNCTIONS
from tinytask.mcp.request_handlers import handle_jsonrpc_request

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/mcp", tags=["mcp"])


@router.post("")
async def mcp_jsonrpc(request: Any = Body(...)):
    """MCP JSON-RPC 2.0 endpoint (initialize, tools/list, tools/call)."""
    if not isinstance(request, dict):
        return {
            "jsonrpc": "2.0",
            "id": None,
            "error": {"code": -32600, "message": "Invalid Request: expected a JSON object"}
        }
    # Store calls block on SQLite; keep them off the event loop.
    return await run_in_threadpool(handle_jsonrpc_request, request)


@router.get("/functions")
async def mcp_list_functions():
    """List the names of the available procedures."""
    return {"functions": [f["name"] for f in MCP_FUNCTIONS]}
