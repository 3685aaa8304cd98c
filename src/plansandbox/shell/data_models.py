"""
Data models for shell execution results.

This module defines the structured result format for shell commands,
including commands that are still running when the call returns.
"""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

STILL_RUNNING_MESSAGE = (
    "Process is still running. Use empty command to get more logs, or 'ctrl+c' to terminate."
)


class CommandPathKind(str, Enum):
    """Where a path token was found in command text."""
    ABSOLUTE = "absolute"  # Whitespace-preceded token starting with '/'
    CD_TARGET = "cd_target"  # Argument of a 'cd'
    PARENT_REFERENCE = "parent_reference"  # Token containing '..'


@dataclass(frozen=True)
class CommandPathToken:
    """A path-like token extracted from shell command text."""

    kind: CommandPathKind
    text: str
    offset: int = field(default=0, compare=False)  # Start of the token in the command


@dataclass
class ExecutionResult:
    """
    Structured result from one shell call.

    Attributes:
        success: Whether the command finished with exit code 0
        stdout: Standard output collected during this call (may be truncated)
        stderr: Standard error collected during this call (may be truncated)
        exit_code: Process exit code, None while the process is still running
        still_running: Whether the process outlived the call's timeout
        timed_out: Whether the call returned because of the timeout
        duration_ms: Duration of this call in milliseconds
        cwd: Working directory of the process
        truncated: Whether output was truncated due to size limits
        command: The command text (empty for a poll)
        error: Error message if validation or execution failed
    """

    success: bool
    stdout: str
    stderr: str
    exit_code: Optional[int]
    still_running: bool
    timed_out: bool
    duration_ms: int
    cwd: str
    truncated: bool = False
    command: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization, dropping empty optional fields."""
        result = asdict(self)
        return {k: v for k, v in result.items() if v is not None}

    @property
    def output(self) -> str:
        """
        Agent-facing text for this result.

        Exit code 0 gives stdout. A running process gives the still-running
        notice after any output so far. A failure gives the exit code and
        stderr (or stdout if stderr is empty).
        """
        if self.error:
            return f"Error: {self.error}"
        if self.still_running:
            collected = self.stdout + self.stderr
            return f"{collected}\n{STILL_RUNNING_MESSAGE}" if collected else STILL_RUNNING_MESSAGE
        if self.exit_code == 0:
            return self.stdout
        return f"Error (Exit Code {self.exit_code}): {self.stderr or self.stdout}"
