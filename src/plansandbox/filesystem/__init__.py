"""
Sandboxed path resolution and directory traversal.

Provides:
- Path normalization and confinement to a plan root
- Symlink classification and per-walk cycle detection
- Glob matching with ignore-file support
- Bounded, lazy directory walks
- Plan id to directory mapping
"""

from .confinement import (
    PathConfinement,
    canonicalize,
    confine,
    is_within,
    normalize_path,
    resolve_path,
)
from .data_models import (
    CandidatePath,
    MatchRecord,
    SkipReason,
    SymlinkStatus,
    WalkEvent,
    WalkEventKind,
    WalkResult,
)
from .ignore import IgnoreRuleCache, IgnoreRuleSet, IgnoreStack, determine_ignore_root
from .patterns import GlobMatcher, compile_glob, expand_braces, normalize_glob, translate_glob
from .plans import PlanDirectoryManager, validate_plan_id
from .symlinks import VisitedSet, classify, describe, is_symlink, read_target
from .walker import DirectoryWalker, sort_newest_first

__all__ = [
    # Confinement
    "PathConfinement",
    "canonicalize",
    "confine",
    "is_within",
    "normalize_path",
    "resolve_path",
    # Data models
    "CandidatePath",
    "MatchRecord",
    "SkipReason",
    "SymlinkStatus",
    "WalkEvent",
    "WalkEventKind",
    "WalkResult",
    # Ignore rules
    "IgnoreRuleCache",
    "IgnoreRuleSet",
    "IgnoreStack",
    "determine_ignore_root",
    # Patterns
    "GlobMatcher",
    "compile_glob",
    "expand_braces",
    "normalize_glob",
    "translate_glob",
    # Plans
    "PlanDirectoryManager",
    "validate_plan_id",
    # Symlinks
    "VisitedSet",
    "classify",
    "describe",
    "is_symlink",
    "read_target",
    # Walker
    "DirectoryWalker",
    "sort_newest_first",
]
