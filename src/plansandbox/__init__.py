"""
plansandbox - Sandboxed file and shell tools for agent plans

Confines every path an agent uses to its plan folder, walks directory
trees safely in the presence of symlinks and ignore files, and runs
shell commands from inside the plan folder.
"""

__version__ = "0.1.0"

from .audit import AuditLogger
from .config import SandboxConfig
from .exceptions import (
    AccessDeniedError,
    FileOperationError,
    PathError,
    PathNotFoundError,
    SandboxError,
    ToolExecutionError,
    UnsupportedFileTypeError,
)
from .filesystem import (
    DirectoryWalker,
    MatchRecord,
    PathConfinement,
    PlanDirectoryManager,
    SkipReason,
    WalkResult,
    compile_glob,
    normalize_path,
)
from .registry import RegistryEntry, ResultRegistry
from .shell import ExecutionResult, ShellSession, validate_command_paths
from .tools import ToolResult, build_tools

__all__ = [
    "__version__",
    # Configuration
    "SandboxConfig",
    "AuditLogger",
    # Errors
    "SandboxError",
    "PathError",
    "AccessDeniedError",
    "PathNotFoundError",
    "UnsupportedFileTypeError",
    "FileOperationError",
    "ToolExecutionError",
    # Filesystem
    "DirectoryWalker",
    "MatchRecord",
    "PathConfinement",
    "PlanDirectoryManager",
    "SkipReason",
    "WalkResult",
    "compile_glob",
    "normalize_path",
    # Shell
    "ExecutionResult",
    "ShellSession",
    "validate_command_paths",
    # Tools
    "ToolResult",
    "build_tools",
    # Registry
    "RegistryEntry",
    "ResultRegistry",
]
