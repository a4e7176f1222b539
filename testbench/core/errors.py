"""Custom exceptions for testbench.

Provides user-friendly error messages and structured error handling.
"""

from typing import Optional, Any


class TestbenchError(Exception):
    """Base exception for all testbench errors.

    Provides:
    - User-friendly message
    - Technical details for debugging
    - Suggested fixes when applicable
    """

    def __init__(
        self,
        message: str,
        details: Optional[str] = None,
        suggestion: Optional[str] = None,
        cause: Optional[Exception] = None
    ):
        self.message = message
        self.details = details
        self.suggestion = suggestion
        self.cause = cause
        super().__init__(message)

    def format_user_friendly(self) -> str:
        """Format error for display to user."""
        parts = [f"❌ {self.message}"]

        if self.details:
            parts.append(f"   Details: {self.details}")

        if self.suggestion:
            parts.append(f"   💡 Try: {self.suggestion}")

        return "\n".join(parts)

    def __str__(self) -> str:
        return self.format_user_friendly()


class ConfigError(TestbenchError):
    """Configuration-related errors."""

    def __init__(self, message: str, config_key: Optional[str] = None, **kwargs):
        suggestion = kwargs.pop("suggestion", None)
        if not suggestion and config_key:
            suggestion = f"Set the {config_key} environment variable or add it to .env"
        super().__init__(message, suggestion=suggestion, **kwargs)
        self.config_key = config_key


class APIError(TestbenchError):
    """Test generation API errors (Gemini)."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        retry_after: Optional[int] = None,
        **kwargs
    ):
        suggestion = kwargs.pop("suggestion", None)
        if not suggestion:
            if status_code == 429:
                suggestion = f"Rate limited. Wait {retry_after or 60} seconds and try again"
            elif status_code == 401:
                suggestion = "Check your API key is valid and has not expired"
            elif status_code == 403:
                suggestion = "Your API key may not have access to this model"

        super().__init__(message, suggestion=suggestion, **kwargs)
        self.status_code = status_code
        self.retry_after = retry_after


class SandboxError(TestbenchError):
    """User code could not be prepared inside the sandbox (e.g. syntax error)."""

    def __init__(self, message: str, lineno: Optional[int] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.lineno = lineno


class SecurityViolation(SandboxError):
    """Restricted code attempted a forbidden operation."""

    def __init__(self, message: str, blocked_operation: Optional[str] = None, **kwargs):
        suggestion = kwargs.pop("suggestion", None)
        if not suggestion:
            suggestion = "Disable restricted mode or use a whitelisted module"
        super().__init__(message, suggestion=suggestion, **kwargs)
        self.blocked_operation = blocked_operation


class ExecutionError(TestbenchError):
    """The execution unit itself failed, as opposed to the user code inside it."""

    def __init__(
        self,
        message: str,
        exit_code: Optional[int] = None,
        **kwargs
    ):
        details = kwargs.pop("details", None)
        if not details and exit_code is not None:
            details = f"Exit code: {exit_code}"

        super().__init__(message, details=details, **kwargs)
        self.exit_code = exit_code


class ExecutionTimeout(TestbenchError):
    """Execution exceeded its wall-clock budget."""

    def __init__(
        self,
        message: str,
        timeout_seconds: Optional[float] = None,
        **kwargs
    ):
        suggestion = kwargs.pop("suggestion", None)
        if not suggestion:
            suggestion = "Look for infinite loops or raise TESTBENCH_TIMEOUT"

        details = kwargs.pop("details", None)
        if not details and timeout_seconds:
            details = f"Timeout after {timeout_seconds}s"

        super().__init__(message, details=details, suggestion=suggestion, **kwargs)
        self.timeout_seconds = timeout_seconds


class ValidationError(TestbenchError):
    """Input validation errors."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        **kwargs
    ):
        details = kwargs.pop("details", None)
        if not details and field:
            details = f"Field: {field}"
            if value is not None:
                details += f", Value: {repr(value)[:50]}"

        super().__init__(message, details=details, **kwargs)
        self.field = field
        self.value = value


class ProjectNotFoundError(TestbenchError):
    """A project id did not match any stored project."""

    def __init__(self, project_id: str, **kwargs):
        suggestion = kwargs.pop("suggestion", None)
        if not suggestion:
            suggestion = "Run 'testbench project list' to see available projects"
        super().__init__(f"Project '{project_id}' not found", suggestion=suggestion, **kwargs)
        self.project_id = project_id
