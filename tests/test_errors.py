"""Tests for the error hierarchy."""

from testbench.core.errors import (
    APIError,
    ConfigError,
    ExecutionError,
    ExecutionTimeout,
    ProjectNotFoundError,
    SandboxError,
    SecurityViolation,
)
from testbench.core import errors


def test_user_friendly_format():
    error = errors.TestbenchError("Something broke", details="disk full", suggestion="free some space")

    assert error.format_user_friendly() == (
        "❌ Something broke\n"
        "   Details: disk full\n"
        "   💡 Try: free some space"
    )
    assert str(error) == error.format_user_friendly()


def test_config_error_suggests_variable():
    error = ConfigError("Missing key", config_key="GEMINI_API_KEY")
    assert "GEMINI_API_KEY" in error.suggestion


def test_api_error_rate_limit_suggestion():
    error = APIError("Too many requests", status_code=429, retry_after=30)
    assert "Wait 30 seconds" in error.suggestion


def test_execution_errors():
    assert ExecutionError("died", exit_code=3).details == "Exit code: 3"
    assert ExecutionTimeout("slow", timeout_seconds=2).details == "Timeout after 2s"


def test_security_violation_is_sandbox_error():
    error = SecurityViolation("Module 'os' is not allowed", blocked_operation="import os")
    assert isinstance(error, SandboxError)
    assert error.blocked_operation == "import os"


def test_project_not_found_message():
    error = ProjectNotFoundError("abc123")
    assert error.message == "Project 'abc123' not found"
    assert error.project_id == "abc123"
