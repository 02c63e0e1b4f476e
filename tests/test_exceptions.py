"""
Tests for exception handling in tinytask.

Tests verify that exceptions carry their context, convert properly to
HTTPException and MCP error responses, and keep stable codes per kind.
"""
import sqlite3

import pytest
from fastapi import HTTPException

from tinytask.exceptions import (
    ServiceError,
    NotFoundError,
    TaskNotFoundError,
    ValidationError,
    SelfReferenceError,
    CircularDependencyError,
    DepthExceededError,
    NotAssignedToCallerError,
    InvalidStateForTransferError,
    DatabaseError,
    to_http_exception,
    to_mcp_error_response,
)
from tinytask.models import TaskCreate
from tinytask.models.validation import parse_model


# ============================================================================
# Test Exception Initialization
# ============================================================================

class TestServiceErrorInitialization:
    """Test ServiceError base class initialization."""

    def test_basic_initialization(self):
        exc = ServiceError("Test error message")
        assert exc.message == "Test error message"
        assert exc.request_id is None
        assert exc.context == {}
        assert exc.original_error is None
        assert str(exc) == "Test error message"

    def test_to_dict(self):
        original = ValueError("Original")
        exc = ServiceError(
            "Test error",
            request_id="req-123",
            context={"key": "value"},
            original_error=original
        )
        result = exc.to_dict()
        assert result["error_type"] == "ServiceError"
        assert result["message"] == "Test error"
        assert result["request_id"] == "req-123"
        assert result["context"] == {"key": "value"}
        assert result["original_error"] == {"type": "ValueError", "message": "Original"}

    def test_to_dict_minimal(self):
        result = ServiceError("Test error").to_dict()
        assert result == {"error_type": "ServiceError", "message": "Test error"}

    def test_context_is_copied(self):
        context = {"key": "value"}
        exc = ServiceError("Test error", context=context)
        context["key"] = "changed"
        assert exc.context == {"key": "value"}


class TestNotFoundErrors:

    def test_not_found_message(self):
        exc = NotFoundError("Task", 123)
        assert exc.resource_id == "123"
        assert exc.message == "Task with ID '123' not found"
        assert exc.context == {"resource_type": "Task", "resource_id": "123"}

    def test_task_not_found_is_not_found(self):
        exc = TaskNotFoundError(7, message="Parent task 7 not found")
        assert isinstance(exc, NotFoundError)
        assert exc.task_id == 7
        assert exc.message == "Parent task 7 not found"


class TestValidationError:

    def test_field_and_value(self):
        exc = ValidationError("Invalid status", field="status", value=5)
        assert exc.field == "status"
        assert exc.value == 5
        assert exc.context == {"field": "status", "value": "5"}

    def test_without_field(self):
        exc = ValidationError("Bad input")
        assert exc.context == {}


class TestGraphErrors:

    def test_self_reference(self):
        exc = SelfReferenceError(4, "parent")
        assert exc.message == "Task 4 cannot be its own parent"
        assert exc.context == {"task_id": 4, "relation": "parent"}

    def test_circular_dependency(self):
        exc = CircularDependencyError("cycle", task_id=1, related_task_id=2)
        assert exc.context == {"task_id": 1, "related_task_id": 2}

    def test_depth_exceeded(self):
        exc = DepthExceededError(3)
        assert "3 levels" in exc.message
        assert exc.max_depth == 3

    def test_not_assigned_to_caller(self):
        exc = NotAssignedToCallerError(9, "intruder", None)
        assert "not assigned to intruder" in exc.message
        assert "no one" in exc.message

    def test_invalid_state_for_transfer(self):
        exc = InvalidStateForTransferError(9, "complete")
        assert "'complete'" in exc.message
        assert exc.status == "complete"


class TestDatabaseError:

    def test_with_operation_and_original(self):
        original = sqlite3.OperationalError("database is locked")
        exc = DatabaseError("commit failed", operation="commit", original_error=original)
        assert exc.operation == "commit"
        assert exc.context["operation"] == "commit"
        assert exc.to_dict()["original_error"]["type"] == "OperationalError"


# ============================================================================
# Test Conversion to HTTPException
# ============================================================================

class TestToHTTPException:
    """Test conversion to HTTPException."""

    @pytest.mark.parametrize("exc,status_code", [
        (ValidationError("bad"), 422),
        (TaskNotFoundError(1), 404),
        (SelfReferenceError(1, "blocker"), 400),
        (CircularDependencyError("cycle"), 409),
        (DepthExceededError(3), 400),
        (NotAssignedToCallerError(1, "a", "b"), 403),
        (InvalidStateForTransferError(1, "complete"), 409),
        (DatabaseError("boom"), 500),
    ])
    def test_status_codes(self, exc, status_code):
        http_exc = to_http_exception(exc)
        assert isinstance(http_exc, HTTPException)
        assert http_exc.status_code == status_code
        assert http_exc.detail["error"] == type(exc).__name__

    def test_not_found_detail(self):
        http_exc = to_http_exception(NotFoundError("Task", "123", request_id="req-456"))
        assert http_exc.detail["message"] == "Task with ID '123' not found"
        assert http_exc.detail["request_id"] == "req-456"

    def test_without_context(self):
        exc = ValidationError("Error", context={"key": "value"})
        assert "context" not in to_http_exception(exc, include_context=False).detail

    def test_default_status_code(self):
        class CustomError(ServiceError):
            pass

        http_exc = to_http_exception(CustomError("Custom error"), default_status_code=400)
        assert http_exc.status_code == 400


# ============================================================================
# Test Conversion to MCP Error Response
# ============================================================================

class TestToMCPErrorResponse:
    """Test conversion to MCP error response."""

    def test_not_found_to_mcp_error(self):
        response = to_mcp_error_response(NotFoundError("Task", "123"))
        assert response["success"] is False
        assert response["error"]["code"] == -32001
        assert response["error"]["message"] == "Task with ID '123' not found"
        assert response["error"]["error_type"] == "NotFoundError"

    def test_validation_error_to_mcp_error(self):
        response = to_mcp_error_response(ValidationError("Invalid value", field="task_id"))
        assert response["error"]["code"] == -32602
        assert response["error"]["context"]["field"] == "task_id"

    def test_codes_are_distinct_per_kind(self):
        kinds = [
            ValidationError("x"),
            TaskNotFoundError(1),
            SelfReferenceError(1, "parent"),
            CircularDependencyError("x"),
            DepthExceededError(3),
            NotAssignedToCallerError(1, "a", "b"),
            InvalidStateForTransferError(1, "complete"),
            DatabaseError("x"),
        ]
        codes = [to_mcp_error_response(exc)["error"]["code"] for exc in kinds]
        assert len(set(codes)) == len(codes)

    def test_mcp_error_with_request_id(self):
        response = to_mcp_error_response(NotFoundError("Task", "123", request_id="req-456"))
        assert response["error"]["request_id"] == "req-456"


# ============================================================================
# Test Model Validation Errors
# ============================================================================

class TestParseModel:
    """pydantic failures surface as tinytask ValidationError."""

    def test_blank_title(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_model(TaskCreate, {"title": "   "})
        assert exc_info.value.field == "title"
        assert exc_info.value.message == "Task title is required"

    def test_unknown_status(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_model(TaskCreate, {"title": "Task", "status": "blocked"})
        assert exc_info.value.field == "status"
        assert exc_info.value.value == "blocked"
        assert "Invalid status" in exc_info.value.message

    def test_missing_title(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_model(TaskCreate, None)
        assert exc_info.value.field == "title"

    def test_instance_passes_through(self):
        data = TaskCreate(title="Task")
        assert parse_model(TaskCreate, data) is data
