"""
Data models for sandboxed path resolution and directory walking.

This module defines the structures passed between confinement, the
symlink guard, the walker and the tool layer.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional


class SymlinkStatus(str, Enum):
    """Classification of a symbolic link relative to the jail root."""
    SAFE = "safe"  # Target is inside the jail root and not an ancestor
    CIRCULAR_ANCESTOR = "circular_ancestor"  # Target is an ancestor of the root or of the link itself
    ESCAPES_JAIL = "escapes_jail"  # Target is outside the jail root


class WalkEventKind(str, Enum):
    """Kind of event produced by a directory walk."""
    ENTER_DIR = "enter_dir"
    EXIT_DIR = "exit_dir"
    FILE_MATCH = "file_match"
    SKIP = "skip"


class SkipReason(str, Enum):
    """Why a node was not visited or not reported."""
    CYCLE = "cycle"  # Directory identity already visited in this walk
    CIRCULAR_SYMLINK = "circular_symlink"
    ESCAPES_JAIL = "escapes_jail"
    DEPTH_LIMIT = "depth_limit"
    PATH_TOO_LONG = "path_too_long"
    IGNORED = "ignored"
    SYMLINK_FILE = "symlink_file"  # Symlinked files are never followed for matching
    NOT_REGULAR = "not_regular"
    IO_ERROR = "io_error"
    NO_MATCH = "no_match"  # Regular file that the pattern did not accept


# Reasons that mean part of the tree was deliberately left unexplored
TRUNCATING_REASONS = frozenset({SkipReason.DEPTH_LIMIT, SkipReason.PATH_TOO_LONG})


@dataclass(frozen=True)
class CandidatePath:
    """
    A user-supplied path at each stage of resolution.

    Attributes:
        raw: The string exactly as supplied by the caller
        relative: Normalized relative form (forward slashes, no leading separator)
        lexical: Absolute path after joining with the root and collapsing '.' and '..'
        canonical: Absolute path with symlinks resolved
        verified: False when the target does not exist and only the existing
                  ancestor prefix could be canonicalized
    """

    raw: str
    relative: str
    lexical: Path
    canonical: Path
    verified: bool = True

    def __str__(self) -> str:
        return str(self.canonical)


@dataclass
class MatchRecord:
    """
    A file accepted by a walk.

    Attributes:
        relative_path: Path relative to the walk root, always with '/' separators
        absolute_path: Absolute path of the file as visited
        size: Size in bytes
        modified: Modification time as POSIX timestamp, None if it could not be read
    """

    relative_path: str
    absolute_path: Path
    size: int
    modified: Optional[float] = None

    @property
    def modified_datetime(self) -> Optional[datetime]:
        """Modification time as a local datetime, if known."""
        if self.modified is None:
            return None
        return datetime.fromtimestamp(self.modified)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        modified = self.modified_datetime
        return {
            "relative_path": self.relative_path,
            "size": self.size,
            "modified": modified.isoformat() if modified else None,
        }


@dataclass(frozen=True)
class WalkEvent:
    """
    One step of a directory walk.

    Attributes:
        kind: What happened
        path: The directory or file concerned
        depth: Depth below the walk root (root is 0)
        match: The accepted file, for FILE_MATCH events
        reason: Why the node was skipped, for SKIP events
        detail: Free-form detail for SKIP events (error text, link target)
    """

    kind: WalkEventKind
    path: Path
    depth: int
    match: Optional[MatchRecord] = None
    reason: Optional[SkipReason] = None
    detail: Optional[str] = None


@dataclass
class WalkResult:
    """
    Folded result of a directory walk.

    A walk that hit the depth or path-length guards is still a success;
    `truncated` tells the caller that part of the tree was left out.
    """

    root: Path
    pattern: str
    matches: List[MatchRecord] = field(default_factory=list)
    skipped: Dict[SkipReason, int] = field(default_factory=dict)
    directories_visited: int = 0

    @property
    def truncated(self) -> bool:
        """Whether a depth or length guard cut part of the tree."""
        return any(self.skipped.get(reason, 0) for reason in TRUNCATING_REASONS)

    @property
    def total_matches(self) -> int:
        return len(self.matches)

    def __bool__(self) -> bool:
        """True if any file matched."""
        return bool(self.matches)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "root": str(self.root),
            "pattern": self.pattern,
            "matches": [m.to_dict() for m in self.matches],
            "total_matches": self.total_matches,
            "skipped": {reason.value: count for reason, count in self.skipped.items()},
            "directories_visited": self.directories_visited,
            "truncated": self.truncated,
        }
