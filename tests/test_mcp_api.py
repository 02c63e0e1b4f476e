"""
Tests for the MCP JSON-RPC endpoint and the health/metrics routes.
"""
import json
import os
import shutil
import tempfile
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from tinytask.app.factory import create_app
from tinytask.dependencies.services import ServiceContainer, set_services


@pytest.fixture
def client():
    """App wired to a temporary database."""
    temp_dir = tempfile.mkdtemp()
    set_services(ServiceContainer(os.path.join(temp_dir, "test.db")))
    try:
        yield TestClient(create_app())
    finally:
        set_services(None)
        shutil.rmtree(temp_dir)


def rpc(client, method, params=None, request_id=1):
    body = {"jsonrpc": "2.0", "id": request_id, "method": method}
    if params is not None:
        body["params"] = params
    response = client.post("/mcp", json=body)
    assert response.status_code == 200
    return response.json()


def call(client, name, **arguments):
    """Call a tool and return (payload, is_error)."""
    data = rpc(client, "tools/call", {"name": name, "arguments": arguments})
    assert "result" in data, data
    result = data["result"]
    return json.loads(result["content"][0]["text"]), result.get("isError", False)


# ============================================================================
# Protocol
# ============================================================================

class TestProtocol:
    """initialize, tools/list and error envelopes."""

    def test_initialize(self, client):
        data = rpc(client, "initialize", {})
        assert data["id"] == 1
        assert data["result"]["serverInfo"]["name"] == "tinytask"
        assert "tools" in data["result"]["capabilities"]

    def test_tools_list(self, client):
        tools = {t["name"]: t for t in rpc(client, "tools/list")["result"]["tools"]}
        for name in ("create_task", "signup_for_task", "move_task", "get_queue_stats", "clear_queue"):
            assert name in tools
        assert tools["create_task"]["inputSchema"]["required"] == ["title"]
        assert set(tools["move_task"]["inputSchema"]["required"]) == {
            "task_id", "current_agent", "new_agent", "comment"
        }
        assert "optional" not in tools["create_task"]["inputSchema"]["properties"]["priority"]

    def test_unknown_method(self, client):
        data = rpc(client, "resources/list")
        assert data["error"]["code"] == -32601

    def test_unknown_tool(self, client):
        data = rpc(client, "tools/call", {"name": "drop_everything", "arguments": {}})
        assert data["error"]["code"] == -32601

    def test_arguments_must_be_object(self, client):
        data = rpc(client, "tools/call", {"name": "list_tasks", "arguments": [1, 2]})
        assert data["error"]["code"] == -32602

    def test_non_object_body(self, client):
        response = client.post("/mcp", json=[1, 2, 3])
        assert response.json()["error"]["code"] == -32600

    def test_function_names(self, client):
        response = client.get("/mcp/functions")
        assert response.status_code == 200
        assert "get_task_with_subtasks" in response.json()["functions"]


# ============================================================================
# Tools
# ============================================================================

class TestTools:
    """End-to-end tool calls against a real store."""

    def test_create_get_update(self, client):
        created, is_error = call(client, "create_task", title="Write docs", assigned_to="vaela", tags=["docs"])
        assert not is_error
        assert created["status"] == "idle"
        assert created["tags"] == ["docs"]

        fetched, _ = call(client, "get_task", task_id=created["id"])
        assert fetched["title"] == "Write docs"
        assert fetched["comments"] == []
        assert fetched["links"] == []

        updated, _ = call(client, "update_task", task_id=created["id"], status="working", assigned_to="zaeion")
        assert updated["status"] == "working"
        assert updated["previous_assigned_to"] == "vaela"

    def test_signup_and_handoff(self, client):
        created, _ = call(client, "create_task", title="Build", assigned_to="vaela")

        claimed, _ = call(client, "signup_for_task", agent_name="vaela")
        assert claimed["task"]["id"] == created["id"]
        assert claimed["task"]["status"] == "working"

        empty, _ = call(client, "signup_for_task", agent_name="vaela")
        assert empty["task"] is None
        assert "message" in empty

        moved, _ = call(client, "move_task", task_id=created["id"], current_agent="vaela",
                        new_agent="zaeion", comment="Ready for review")
        assert moved["assigned_to"] == "zaeion"
        assert moved["comments"][0]["content"] == "Ready for review"

        queue, _ = call(client, "get_my_queue", agent_name="zaeion")
        assert queue["count"] == 1

    def test_subtasks_and_queues(self, client):
        parent, _ = call(client, "create_task", title="Epic", queue_name="dev")
        child, _ = call(client, "create_subtask", parent_task_id=parent["id"], title="Part")
        assert child["queue_name"] == "dev"

        subtasks, _ = call(client, "get_subtasks", parent_task_id=parent["id"])
        assert [t["id"] for t in subtasks["subtasks"]] == [child["id"]]

        stats, _ = call(client, "get_queue_stats", queue_name="dev")
        assert stats["total_tasks"] == 2
        assert stats["by_status"]["idle"] == 2

        cleared, _ = call(client, "clear_queue", queue_name="dev")
        assert cleared["tasks_cleared"] == 2

        queues, _ = call(client, "list_queues")
        assert queues == {"queues": [], "count": 0}

    def test_delete(self, client):
        created, _ = call(client, "create_task", title="Temp")
        deleted, _ = call(client, "delete_task", task_id=created["id"])
        assert deleted == {"success": True, "task_id": created["id"]}

    def test_not_found_is_tool_error(self, client):
        payload, is_error = call(client, "get_task", task_id=999)
        assert is_error
        assert payload["success"] is False
        assert payload["error"]["code"] == -32001
        assert payload["error"]["error_type"] == "TaskNotFoundError"

    def test_missing_required_parameter(self, client):
        payload, is_error = call(client, "get_task")
        assert is_error
        assert payload["error"]["code"] == -32602
        assert payload["error"]["context"]["field"] == "task_id"

    def test_non_string_agent_is_tool_error(self, client):
        payload, is_error = call(client, "signup_for_task", agent_name=7)
        assert is_error
        assert payload["error"]["error_type"] == "ValidationError"

    def test_unknown_update_field_is_tool_error(self, client):
        created, _ = call(client, "create_task", title="Task")
        payload, is_error = call(client, "update_task", task_id=created["id"], stauts="complete")
        assert is_error
        assert payload["error"]["context"]["field"] == "stauts"

    def test_invalid_status_is_validation_error(self, client):
        payload, is_error = call(client, "create_task", title="Task", status="blocked")
        assert is_error
        assert payload["error"]["error_type"] == "ValidationError"

    def test_circular_blocker_is_tool_error(self, client):
        a, _ = call(client, "create_task", title="A")
        b, _ = call(client, "create_task", title="B", blocked_by_task_id=a["id"])
        payload, is_error = call(client, "set_blocked_by", task_id=a["id"], blocker_task_id=b["id"])
        assert is_error
        assert payload["error"]["error_type"] == "CircularDependencyError"

    def test_unexpected_error_is_internal_error(self, client):
        with patch("tinytask.mcp.request_handlers.MCPTinyTaskAPI.list_queues", side_effect=RuntimeError("boom")):
            data = rpc(client, "tools/call", {"name": "list_queues", "arguments": {}})
        assert data["error"]["code"] == -32603


# ============================================================================
# Routes
# ============================================================================

class TestRoutes:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["components"]["database"]["status"] == "healthy"

    def test_metrics(self, client):
        call(client, "list_queues")
        response = client.get("/metrics")
        assert response.status_code == 200
        assert "tinytask_procedure_calls_total" in response.text

    def test_request_id_echoed(self, client):
        response = client.get("/health", headers={"X-Request-ID": "abc123"})
        assert response.headers["X-Request-ID"] == "abc123"

    def test_mcp_route_delegates_to_handler(self, client):
        with patch("tinytask.api.routes.mcp.handle_jsonrpc_request") as mock_handler:
            mock_handler.return_value = {"jsonrpc": "2.0", "id": 7, "result": {"ok": True}}
            response = client.post("/mcp", json={"jsonrpc": "2.0", "id": 7, "method": "ping"})
        assert response.json()["result"] == {"ok": True}
        mock_handler.assert_called_once_with({"jsonrpc": "2.0", "id": 7, "method": "ping"})
