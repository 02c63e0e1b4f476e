"""Request handlers for JSON-RPC requests."""
import json
import time
import logging
from typing import Dict, Any, List

from tinytask import __version__
from tinytask.exceptions import ServiceError, ValidationError, to_mcp_error_response
from tinytask.mcp.api import MCPTinyTaskAPI
from tinytask.mcp.functions import MCP_FUNCTIONS
from tinytask.monitoring import record_procedure_call, get_request_id

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = "2024-11-05"

_FUNCTIONS_BY_NAME = {f["name"]: f for f in MCP_FUNCTIONS}


def _required_parameters(func_def: Dict[str, Any]) -> List[str]:
    return [k for k, v in func_def.get("parameters", {}).items() if v.get("optional") is not True]


def _input_schema(func_def: Dict[str, Any]) -> Dict[str, Any]:
    properties = {
        name: {k: v for k, v in param_def.items() if k != "optional"}
        for name, param_def in func_def.get("parameters", {}).items()
    }
    return {
        "type": "object",
        "properties": properties,
        "required": _required_parameters(func_def),
    }


def _without(arguments: Dict[str, Any], *names: str) -> Dict[str, Any]:
    return {k: v for k, v in arguments.items() if k not in names}


def _build_tool_map(arguments: Dict[str, Any]) -> Dict[str, Any]:
    """Map tool names to MCPTinyTaskAPI calls bound to the request's arguments."""
    return {
        "create_task": lambda: MCPTinyTaskAPI.create_task(arguments),
        "get_task": lambda: MCPTinyTaskAPI.get_task(
            arguments.get("task_id"),
            arguments.get("include_relations", True)
        ),
        "update_task": lambda: MCPTinyTaskAPI.update_task(
            arguments.get("task_id"),
            _without(arguments, "task_id")
        ),
        "delete_task": lambda: MCPTinyTaskAPI.delete_task(arguments.get("task_id")),
        "archive_task": lambda: MCPTinyTaskAPI.archive_task(arguments.get("task_id")),
        "list_tasks": lambda: MCPTinyTaskAPI.list_tasks(arguments),
        "get_my_queue": lambda: MCPTinyTaskAPI.get_my_queue(arguments.get("agent_name")),
        "signup_for_task": lambda: MCPTinyTaskAPI.signup_for_task(arguments.get("agent_name")),
        "move_task": lambda: MCPTinyTaskAPI.move_task(
            arguments.get("task_id"),
            arguments.get("current_agent"),
            arguments.get("new_agent"),
            arguments.get("comment")
        ),
        "set_blocked_by": lambda: MCPTinyTaskAPI.set_blocked_by(
            arguments.get("task_id"),
            arguments.get("blocker_task_id")
        ),
        "get_blocked_tasks": lambda: MCPTinyTaskAPI.get_blocked_tasks(arguments.get("blocker_task_id")),
        "create_subtask": lambda: MCPTinyTaskAPI.create_subtask(
            arguments.get("parent_task_id"),
            _without(arguments, "parent_task_id")
        ),
        "get_subtasks": lambda: MCPTinyTaskAPI.get_subtasks(
            arguments.get("parent_task_id"),
            arguments.get("recursive", False)
        ),
        "get_task_with_subtasks": lambda: MCPTinyTaskAPI.get_task_with_subtasks(
            arguments.get("task_id"),
            arguments.get("recursive", False)
        ),
        "move_subtask": lambda: MCPTinyTaskAPI.move_subtask(
            arguments.get("subtask_id"),
            arguments.get("new_parent_id")
        ),
        "list_queues": lambda: MCPTinyTaskAPI.list_queues(),
        "get_queue_stats": lambda: MCPTinyTaskAPI.get_queue_stats(arguments.get("queue_name")),
        "add_task_to_queue": lambda: MCPTinyTaskAPI.add_task_to_queue(
            arguments.get("task_id"),
            arguments.get("queue_name")
        ),
        "remove_task_from_queue": lambda: MCPTinyTaskAPI.remove_task_from_queue(arguments.get("task_id")),
        "move_task_to_queue": lambda: MCPTinyTaskAPI.move_task_to_queue(
            arguments.get("task_id"),
            arguments.get("new_queue_name")
        ),
        "get_queue_tasks": lambda: MCPTinyTaskAPI.get_queue_tasks(
            arguments.get("queue_name"),
            _without(arguments, "queue_name")
        ),
        "clear_queue": lambda: MCPTinyTaskAPI.clear_queue(arguments.get("queue_name")),
    }


def _tool_result(payload: Dict[str, Any], is_error: bool = False) -> Dict[str, Any]:
    result = {"content": [{"type": "text", "text": json.dumps(payload)}]}
    if is_error:
        result["isError"] = True
    return result


def call_tool(tool_name: str, arguments: Dict[str, Any]) -> Dict[str, Any]:
    """
    Run one tool and wrap its outcome as an MCP tool result.

    Service errors become results flagged ``isError`` whose text is the
    serialized error, so the calling agent sees the error kind and message.
    Anything else propagates to the JSON-RPC layer as an internal error.
    """
    func_def = _FUNCTIONS_BY_NAME[tool_name]
    start_time = time.time()
    try:
        missing = [name for name in _required_parameters(func_def) if name not in arguments]
        if missing:
            raise ValidationError(
                f"Missing required parameter(s) for {tool_name}: {', '.join(missing)}",
                field=missing[0],
            )
        result = _build_tool_map(arguments)[tool_name]()
    except ServiceError as e:
        if not e.request_id:
            e.request_id = get_request_id() or None
        record_procedure_call(tool_name, time.time() - start_time, type(e).__name__)
        logger.warning(f"Tool {tool_name} failed: {type(e).__name__}: {e.message}")
        return _tool_result(to_mcp_error_response(e), is_error=True)
    except Exception as e:
        record_procedure_call(tool_name, time.time() - start_time, type(e).__name__)
        raise

    record_procedure_call(tool_name, time.time() - start_time)
    if not isinstance(result, dict):
        result = {"result": result}
    return _tool_result(result)


def handle_jsonrpc_request(request: Dict[str, Any]) -> Dict[str, Any]:
    """
    Handle JSON-RPC 2.0 request.

    Args:
        request: JSON-RPC request dictionary

    Returns:
        JSON-RPC response dictionary
    """
    jsonrpc = request.get("jsonrpc", "2.0")
    request_id = request.get("id")
    method = request.get("method")
    params = request.get("params") or {}

    if method == "initialize":
        return {
            "jsonrpc": jsonrpc,
            "id": request_id,
            "result": {
                "protocolVersion": PROTOCOL_VERSION,
                "capabilities": {"tools": {}},
                "serverInfo": {
                    "name": "tinytask",
                    "version": __version__
                }
            }
        }
    elif method == "tools/list":
        tools = [
            {
                "name": func_def["name"],
                "description": func_def["description"],
                "inputSchema": _input_schema(func_def)
            }
            for func_def in MCP_FUNCTIONS
        ]
        return {"jsonrpc": jsonrpc, "id": request_id, "result": {"tools": tools}}
    elif method == "tools/call":
        tool_name = params.get("name")
        arguments = params.get("arguments") or {}

        if tool_name not in _FUNCTIONS_BY_NAME:
            return {
                "jsonrpc": jsonrpc,
                "id": request_id,
                "error": {
                    "code": -32601,
                    "message": f"Method not found: {tool_name}"
                }
            }
        if not isinstance(arguments, dict):
            return {
                "jsonrpc": jsonrpc,
                "id": request_id,
                "error": {
                    "code": -32602,
                    "message": "Invalid params: arguments must be an object"
                }
            }

        try:
            result = call_tool(tool_name, arguments)
        except Exception as e:
            logger.error(f"Unhandled error in tool {tool_name}", exc_info=True)
            return {
                "jsonrpc": jsonrpc,
                "id": request_id,
                "error": {
                    "code": -32603,
                    "message": f"Internal error: {str(e)}"
                }
            }
        return {"jsonrpc": jsonrpc, "id": request_id, "result": result}
    else:
        return {
            "jsonrpc": jsonrpc,
            "id": request_id,
            "error": {
                "code": -32601,
                "message": f"Method not found: {method}"
            }
        }
