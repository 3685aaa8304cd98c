"""
Shell execution for plan sandboxes.

Provides:
- Heuristic path validation of command text against the plan root
- Per-plan shell sessions with timeout, polling and interruption
"""

from .data_models import CommandPathKind, CommandPathToken, ExecutionResult
from .executor import (
    ShellSession,
    build_shell_env,
    default_shell_path,
    signal_process_tree,
    wait_for_exit,
)
from .validators import (
    check_command_paths,
    extract_command_paths,
    track_working_directories,
    validate_command_paths,
)

__all__ = [
    "CommandPathKind",
    "CommandPathToken",
    "ExecutionResult",
    "ShellSession",
    "build_shell_env",
    "default_shell_path",
    "signal_process_tree",
    "wait_for_exit",
    "check_command_paths",
    "extract_command_paths",
    "track_working_directories",
    "validate_command_paths",
]
