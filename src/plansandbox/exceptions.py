"""
Sandbox Exception Hierarchy

This module defines the exception hierarchy for the plan sandbox, giving
each failure category a specific error type with rich context and a
standardized message format.

The hierarchy is designed to:
1. Keep confinement failures distinguishable from ordinary I/O problems
2. Include context information (plan ids, paths, tool names, timestamps)
3. Let tool surfaces turn any failure into descriptive text for the agent
"""

import time
from typing import Any, Dict, Optional


class SandboxError(Exception):
    """
    Base exception class for all sandbox errors.

    Attributes:
        error_code: Unique error code for programmatic handling
        plan_id: Plan where the error occurred (if applicable)
        timestamp: When the error occurred
        context: Additional context information
        user_message: Message suitable for returning to an agent
        developer_message: Detailed technical error message
        suggestion: Suggested fix or next steps (if applicable)
    """

    def __init__(
        self,
        message: str,
        error_code: str = "SANDBOX_ERROR",
        plan_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        user_message: Optional[str] = None,
        suggestion: Optional[str] = None,
    ):
        """
        Initialize sandbox error with rich context.

        Args:
            message: Technical error message for developers
            error_code: Unique error code for programmatic handling
            plan_id: Plan where the error occurred
            context: Additional context information
            user_message: Message suitable for returning to an agent
            suggestion: Suggested fix or next steps
        """
        super().__init__(message)
        self.error_code = error_code
        self.plan_id = plan_id
        self.timestamp = time.time()
        self.context = context or {}
        self.user_message = user_message or message
        self.developer_message = message
        self.suggestion = suggestion

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.developer_message,
            "user_message": self.user_message,
            "plan_id": self.plan_id,
            "timestamp": self.timestamp,
            "context": self.context,
            "suggestion": self.suggestion,
        }

    def __str__(self) -> str:
        """String representation with context."""
        parts = [f"[{self.error_code}]"]
        if self.plan_id:
            parts.append(f"Plan:{self.plan_id}")
        parts.append(self.developer_message)
        return " ".join(parts)


# =============================================================================
# PATH ERRORS
# =============================================================================

class PathError(SandboxError):
    """Base class for path resolution and access errors."""

    def __init__(self, message: str, path: Optional[str] = None, **kwargs):
        self.path = path

        context = kwargs.pop("context", None) or {}
        if path is not None:
            context["path"] = path

        error_code = kwargs.pop("error_code", "PATH_ERROR")
        super().__init__(message, error_code=error_code, context=context, **kwargs)


class AccessDeniedError(PathError):
    """
    Raised when a path or command would leave the plan root.

    Examples:
    - Relative path climbing above the root with '..'
    - Symlink whose real target lies outside the root
    - Absolute path in a shell command outside the root
    - Path that cannot be canonicalized at all
    """

    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        jail_root: Optional[str] = None,
        **kwargs
    ):
        self.jail_root = jail_root

        context = kwargs.pop("context", None) or {}
        if jail_root is not None:
            context["jail_root"] = jail_root

        kwargs.setdefault("user_message", f"Access denied: {message}")
        kwargs.setdefault("suggestion", "Use a path relative to the plan folder.")
        super().__init__(
            message,
            path=path,
            error_code="ACCESS_DENIED",
            context=context,
            **kwargs
        )


class PathNotFoundError(PathError):
    """Raised when a requested file or directory does not exist."""

    def __init__(self, message: str, path: Optional[str] = None, **kwargs):
        kwargs.setdefault("suggestion", "List the directory to check the available names.")
        super().__init__(message, path=path, error_code="NOT_FOUND", **kwargs)


class UnsupportedFileTypeError(PathError):
    """Raised when an operation is refused for the file's extension."""

    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        extension: Optional[str] = None,
        **kwargs
    ):
        self.extension = extension

        context = kwargs.pop("context", None) or {}
        if extension is not None:
            context["extension"] = extension

        super().__init__(
            message,
            path=path,
            error_code="UNSUPPORTED_TYPE",
            context=context,
            **kwargs
        )


class FileOperationError(PathError):
    """
    Raised when the filesystem itself fails an operation.

    Examples:
    - Permission denied by the operating system
    - Directory removed while it was being listed
    """

    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        operation: Optional[str] = None,
        **kwargs
    ):
        self.operation = operation

        context = kwargs.pop("context", None) or {}
        if operation is not None:
            context["operation"] = operation

        super().__init__(
            message,
            path=path,
            error_code="IO_FAILURE",
            context=context,
            **kwargs
        )


# =============================================================================
# TOOL ERRORS
# =============================================================================

class ToolExecutionError(SandboxError):
    """
    Raised when tool execution fails.

    Examples:
    - Shell process could not be started
    - Invalid tool arguments
    """

    def __init__(
        self,
        message: str,
        tool_name: Optional[str] = None,
        tool_args: Optional[Dict[str, Any]] = None,
        execution_error: Optional[str] = None,
        **kwargs
    ):
        self.tool_name = tool_name
        self.tool_args = tool_args
        self.execution_error = execution_error

        context = kwargs.pop("context", None) or {}
        if tool_name:
            context["tool_name"] = tool_name
        if tool_args:
            context["tool_args"] = str(tool_args)
        if execution_error:
            context["execution_error"] = execution_error

        kwargs.setdefault("user_message", "Tool execution failed.")
        kwargs.setdefault(
            "suggestion",
            "Check tool arguments and ensure tool is available and functional.",
        )
        super().__init__(
            message,
            error_code="TOOL_EXECUTION_ERROR",
            context=context,
            **kwargs
        )
