"""
Configuration for the plan sandbox.

This module defines the configuration class for traversal limits,
ignore-file handling, shell execution timeouts and audit logging.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional


DEFAULT_IGNORE_FILE_NAMES = [
    ".gitignore",
    ".ignore",
]

DEFAULT_TEXT_EXTENSIONS = [
    ".txt", ".md", ".markdown",                         # Plain text and Markdown
    ".java", ".py", ".js", ".ts", ".jsx", ".tsx",       # Common programming languages
    ".html", ".htm", ".mhtml", ".css", ".scss", ".sass", ".less",  # Web
    ".xml", ".json", ".yaml", ".yml", ".properties",    # Configuration
    ".sql", ".sh", ".bat", ".cmd",                      # Scripts and database
    ".log", ".conf", ".ini",                            # Logs and configuration
    ".gradle", ".pom", ".mvn",                          # Build tools
    ".csv", ".rst", ".adoc",                            # Documentation and data
    ".cpp", ".c", ".h", ".go", ".rs", ".php", ".rb", ".swift", ".kt", ".scala",
]


@dataclass
class SandboxConfig:
    """
    Configuration for sandboxed path resolution, traversal and shell execution.

    A single instance is usually shared by every tool of a plan. It is
    read-only after construction.
    """

    # === Traversal Limits ===

    max_depth: int = 100
    """Maximum directory depth below the walk root. Deeper subtrees are skipped, not failed."""

    max_path_length: int = 1000
    """Maximum textual length of an absolute path considered during a walk."""

    # === Path Normalization ===

    plan_id_prefix: str = "plan-"
    """
    Prefix of plan identifiers. A leading '<prefix><id>/' segment in a
    user-supplied path is stripped during normalization, since agents
    often echo the plan folder name back.
    """

    external_link_dir_name: str = "linked_external"
    """
    Name of the directory inside a plan root that holds links to external
    folders. Searches under it read ignore files from the link target.
    """

    allow_external_link: bool = True
    """
    Whether a symlink at '<plan root>/<external_link_dir_name>' is treated
    as a mount: paths under it may resolve into the link's real target.
    If False, such paths are confined to the plan root like any other.
    """

    # === Ignore Files ===

    respect_ignore_files: bool = True
    """Whether to honor ignore files when walking directories."""

    ignore_file_names: List[str] = field(default_factory=lambda: DEFAULT_IGNORE_FILE_NAMES.copy())
    """
    Ignore file names read from the ignore root and every directory below
    it, in order. Later files override earlier ones.
    """

    # === File Type Policy ===

    supported_text_extensions: List[str] = field(default_factory=lambda: DEFAULT_TEXT_EXTENSIONS.copy())
    """Lower-case extensions (with dot) that the text file tools (read, write, delete) accept."""

    max_lines_for_full_read: int = 300
    """Files longer than this are only read in ranges (offset/limit) unless the limit is bypassed."""

    # === Shell Execution ===

    shell_path: Optional[str] = None
    """Shell used for commands. If None, the first of bash/sh found on PATH."""

    command_timeout: float = 60.0
    """
    Seconds to wait for a command before returning partial output.
    The process is NOT killed on timeout: the caller can poll it with
    an empty command or stop it with 'ctrl+c'.
    """

    reader_join_timeout: float = 5.0
    """Seconds to wait for the stdout/stderr readers after the process exits or times out."""

    terminate_grace_seconds: float = 5.0
    """Seconds between SIGTERM and SIGKILL when terminating a process tree."""

    max_output_bytes: int = 1_000_000
    """Maximum characters of stdout/stderr returned per call."""

    # === Audit Logging ===

    enable_audit_logging: bool = True
    """Whether to record confinement decisions and mutations in the audit log."""

    audit_log_path: Optional[Path] = None
    """Path to a JSON-lines audit log file. If None, audit records go to standard logging only."""

    def __post_init__(self):
        """Validate configuration after initialization."""
        if self.audit_log_path is not None and not isinstance(self.audit_log_path, Path):
            self.audit_log_path = Path(self.audit_log_path)

        if self.max_depth <= 0:
            raise ValueError("max_depth must be positive")

        if self.max_path_length <= 0:
            raise ValueError("max_path_length must be positive")

        if self.command_timeout <= 0:
            raise ValueError("command_timeout must be positive")

        if self.reader_join_timeout <= 0:
            raise ValueError("reader_join_timeout must be positive")

        if self.terminate_grace_seconds < 0:
            raise ValueError("terminate_grace_seconds must not be negative")

        if self.max_output_bytes <= 0:
            raise ValueError("max_output_bytes must be positive")

        if self.max_lines_for_full_read <= 0:
            raise ValueError("max_lines_for_full_read must be positive")

        if not self.plan_id_prefix:
            raise ValueError("plan_id_prefix must not be empty")

        # Extensions are compared lower-case with a leading dot
        self.supported_text_extensions = [
            ext.lower() if ext.startswith(".") else f".{ext.lower()}"
            for ext in self.supported_text_extensions
        ]

    def is_supported_text_file(self, path: str) -> bool:
        """
        Check whether a path has one of the supported text extensions.

        Args:
            path: File path or name

        Returns:
            True if the extension is in supported_text_extensions
        """
        if not path:
            return False
        suffix = Path(path).suffix.lower()
        return bool(suffix) and suffix in self.supported_text_extensions

    @classmethod
    def create_permissive(cls, **overrides) -> "SandboxConfig":
        """
        Create a permissive configuration for trusted workspaces.

        Ignore files are disregarded and shell commands get more time.

        Args:
            **overrides: Override any default values

        Returns:
            SandboxConfig with permissive settings
        """
        defaults = {
            "respect_ignore_files": False,
            "command_timeout": 300.0,
            "max_output_bytes": 5_000_000,
        }
        defaults.update(overrides)
        return cls(**defaults)

    @classmethod
    def create_restrictive(cls, **overrides) -> "SandboxConfig":
        """
        Create a restrictive configuration for untrusted workloads.

        Args:
            **overrides: Override any default values

        Returns:
            SandboxConfig with restrictive settings
        """
        defaults = {
            "max_depth": 20,
            "max_path_length": 512,
            "command_timeout": 15.0,
            "max_output_bytes": 100_000,
        }
        defaults.update(overrides)
        return cls(**defaults)
