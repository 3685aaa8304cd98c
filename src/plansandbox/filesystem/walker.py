"""
Bounded, ignore-aware recursive directory walk.

The walk is a lazy sequence of WalkEvents. Callers that only need the
matches use DirectoryWalker.walk(), which folds the events into a
WalkResult sorted newest first.

Guards applied before descending into a directory, in order:
1. Cycle: directory identity already visited in this walk
2. Symlink: non-root symlinked directories must classify as SAFE
3. Depth: no descent into a directory at max_depth, so no entry lies deeper
4. Path length: absolute path longer than max_path_length
5. Ignore rules: directory excluded with nothing re-included beneath it,
   by the ignore files of the ignore root or any directory on the way down

A failure on one node is reported as a SKIP event; the walk goes on.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterator, List, Optional, Tuple, Union

from plansandbox.exceptions import FileOperationError, PathNotFoundError

from .confinement import PathConfinement
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
from .patterns import GlobMatcher, compile_glob
from .symlinks import VisitedSet, classify, describe

logger = logging.getLogger(__name__)


def _read_size_and_mtime(path: Path) -> Tuple[int, Optional[float]]:
    """Size and modification time of a file; mtime is None if stat fails."""
    try:
        st = os.stat(path, follow_symlinks=False)
    except OSError as e:
        logger.warning(f"Cannot read attributes of {path}: {e}")
        return 0, None
    return st.st_size, st.st_mtime


def sort_newest_first(matches: List[MatchRecord]) -> List[MatchRecord]:
    """
    Sort matches by modification time, newest first.

    The sort is stable, so equal times keep visitation order. Matches
    whose time could not be read go last.
    """
    return sorted(matches, key=lambda m: (m.modified is None, -(m.modified or 0.0)))


class _WalkState:
    """Per-walk state. Never shared between walks."""

    def __init__(
        self,
        root: Path,
        boundary: Path,
        matcher: GlobMatcher,
        ignore_root: Path,
    ):
        self.root = root
        self.boundary = boundary
        self.matcher = matcher
        self.ignore_root = ignore_root
        self.visited = VisitedSet()

    def relative_to_root(self, path: Path) -> str:
        return path.relative_to(self.root).as_posix()

    def relative_to_ignore_root(self, path: Path) -> Optional[str]:
        try:
            return path.relative_to(self.ignore_root).as_posix()
        except ValueError:
            return None


class DirectoryWalker:
    """
    Walks a directory tree inside a plan root and matches files against a glob.

    Example:
        ```python
        walker = DirectoryWalker(PathConfinement("/plans/plan-1"))

        for event in walker.events("*.md", "docs"):
            if event.kind is WalkEventKind.FILE_MATCH:
                print(event.match.relative_path)

        result = walker.walk("**/*.py")
        ```
    """

    def __init__(
        self,
        confinement: PathConfinement,
        ignore_cache: Optional[IgnoreRuleCache] = None,
    ):
        """
        Initialize the walker.

        Args:
            confinement: Confinement of the plan root (also carries the config)
            ignore_cache: Shared ignore-rule cache; a private one is created if None
        """
        self.confinement = confinement
        self.config = confinement.config
        self.ignore_cache = ignore_cache if ignore_cache is not None else IgnoreRuleCache()

    def _resolve_root(self, search_root: Union[str, CandidatePath, None]) -> CandidatePath:
        if isinstance(search_root, CandidatePath):
            candidate = search_root
        else:
            candidate = self.confinement.resolve_and_confine(search_root or "")

        if not candidate.canonical.exists():
            raise PathNotFoundError(
                f"Search directory does not exist: {candidate.raw or '.'}",
                path=candidate.raw,
            )
        if not candidate.canonical.is_dir():
            raise FileOperationError(
                f"Search path is not a directory: {candidate.raw}",
                path=candidate.raw,
                operation="walk",
            )
        return candidate

    def _load_rules(self, directory: Path) -> IgnoreRuleSet:
        return self.ignore_cache.get(
            self.confinement.jail_root,
            directory,
            self.config.ignore_file_names,
        )

    def _initial_ignores(self, candidate: CandidatePath) -> Tuple[Path, IgnoreStack]:
        """Ignore root of a search, and the rules of every directory from it down to the walk root."""
        ignore_root = determine_ignore_root(
            candidate.lexical,
            self.confinement.jail_root,
            self.config.external_link_dir_name,
        )
        stack = IgnoreStack()
        if not self.config.respect_ignore_files:
            return ignore_root, stack

        stack = stack.push("", self._load_rules(ignore_root))
        try:
            parts = candidate.canonical.relative_to(ignore_root).parts
        except ValueError:
            return ignore_root, stack
        directory = ignore_root
        for part in parts:
            directory = directory / part
            stack = stack.push(directory.relative_to(ignore_root).as_posix(), self._load_rules(directory))
        return ignore_root, stack

    def events(
        self,
        pattern: str,
        search_root: Union[str, CandidatePath, None] = None,
    ) -> Iterator[WalkEvent]:
        """
        Walk lazily, yielding one event per step.

        Each call starts a fresh walk with its own visited set, so the
        sequence can be restarted by calling again.

        Args:
            pattern: Glob pattern, auto-prefixed with '**/'
            search_root: Directory to start from, relative to the plan root
                         (default: the plan root itself)

        Yields:
            WalkEvent for every directory entered/left, matched file and skip

        Raises:
            ValueError: If the pattern is empty or invalid
            AccessDeniedError: If the search root leaves the plan root
            PathNotFoundError: If the search root does not exist
        """
        matcher = compile_glob(pattern)
        candidate = self._resolve_root(search_root)
        ignore_root, ignores = self._initial_ignores(candidate)
        root = candidate.canonical
        state = _WalkState(
            root=root,
            boundary=self.confinement.boundary_for(root),
            matcher=matcher,
            ignore_root=ignore_root,
        )
        logger.debug(f"Walking {root} for '{matcher.normalized}' (ignore root: {ignore_root})")
        yield from self._walk_directory(state, root, 0, ignores)

    def _skip(self, path: Path, depth: int, reason: SkipReason, detail: Optional[str] = None) -> WalkEvent:
        return WalkEvent(
            kind=WalkEventKind.SKIP,
            path=path,
            depth=depth,
            reason=reason,
            detail=detail,
        )

    def _check_directory(
        self, state: _WalkState, path: Path, depth: int, ignores: IgnoreStack
    ) -> Optional[WalkEvent]:
        """Apply the directory guards. Returns a SKIP event, or None to descend."""
        is_root = depth == 0

        if not state.visited.add(path):
            logger.debug(f"Cycle detected, already visited {path}")
            return self._skip(path, depth, SkipReason.CYCLE)

        if not is_root and os.path.islink(path):
            status = classify(path, state.boundary)
            if status is SymlinkStatus.CIRCULAR_ANCESTOR:
                logger.debug(f"Skipping circular symlink: {describe(path)}")
                return self._skip(path, depth, SkipReason.CIRCULAR_SYMLINK, describe(path))
            if status is SymlinkStatus.ESCAPES_JAIL:
                logger.warning(f"Skipping symlink leaving the plan root: {describe(path)}")
                return self._skip(path, depth, SkipReason.ESCAPES_JAIL, describe(path))

        if not is_root and depth >= self.config.max_depth:
            logger.warning(
                f"Path depth {depth} reaches maximum ({self.config.max_depth}). Skipping directory: {path}"
            )
            return self._skip(path, depth, SkipReason.DEPTH_LIMIT)

        if len(str(path)) > self.config.max_path_length:
            logger.warning(
                f"Path length {len(str(path))} exceeds maximum ({self.config.max_path_length}). "
                f"Skipping directory: {path}"
            )
            return self._skip(path, depth, SkipReason.PATH_TOO_LONG)

        if not is_root and ignores:
            rel = state.relative_to_ignore_root(path)
            if rel is not None and ignores.should_skip_directory(rel):
                return self._skip(path, depth, SkipReason.IGNORED)

        return None

    def _walk_directory(
        self, state: _WalkState, path: Path, depth: int, ignores: IgnoreStack
    ) -> Iterator[WalkEvent]:
        skip = self._check_directory(state, path, depth, ignores)
        if skip is not None:
            yield skip
            return

        if depth > 0 and self.config.respect_ignore_files:
            rel = state.relative_to_ignore_root(path)
            if rel is not None:
                ignores = ignores.push(rel, self._load_rules(path))

        try:
            with os.scandir(path) as it:
                entries = sorted(it, key=lambda e: e.name)
        except OSError as e:
            logger.warning(f"Cannot list directory {path}: {e}")
            yield self._skip(path, depth, SkipReason.IO_ERROR, str(e))
            return

        yield WalkEvent(kind=WalkEventKind.ENTER_DIR, path=path, depth=depth)

        for entry in entries:
            child = path / entry.name
            try:
                if entry.is_symlink():
                    if entry.is_dir():
                        yield from self._walk_directory(state, child, depth + 1, ignores)
                    else:
                        # Symlinked files are never followed for matching
                        yield self._skip(child, depth + 1, SkipReason.SYMLINK_FILE)
                elif entry.is_dir(follow_symlinks=False):
                    yield from self._walk_directory(state, child, depth + 1, ignores)
                elif entry.is_file(follow_symlinks=False):
                    yield self._visit_file(state, child, depth + 1, ignores)
                else:
                    yield self._skip(child, depth + 1, SkipReason.NOT_REGULAR)
            except OSError as e:
                logger.warning(f"Error visiting {child}: {e}. Skipping and continuing.")
                yield self._skip(child, depth + 1, SkipReason.IO_ERROR, str(e))

        yield WalkEvent(kind=WalkEventKind.EXIT_DIR, path=path, depth=depth)

    def _visit_file(self, state: _WalkState, path: Path, depth: int, ignores: IgnoreStack) -> WalkEvent:
        if len(str(path)) > self.config.max_path_length:
            logger.warning(
                f"File path length {len(str(path))} exceeds maximum ({self.config.max_path_length}). "
                f"Skipping file: {path}"
            )
            return self._skip(path, depth, SkipReason.PATH_TOO_LONG)

        if ignores:
            rel_ignore = state.relative_to_ignore_root(path)
            if rel_ignore is not None and ignores.is_ignored(rel_ignore):
                return self._skip(path, depth, SkipReason.IGNORED)

        relative = state.relative_to_root(path)
        if not state.matcher.matches(relative):
            return self._skip(path, depth, SkipReason.NO_MATCH)

        size, modified = _read_size_and_mtime(path)
        record = MatchRecord(
            relative_path=relative,
            absolute_path=path,
            size=size,
            modified=modified,
        )
        return WalkEvent(kind=WalkEventKind.FILE_MATCH, path=path, depth=depth, match=record)

    def walk(
        self,
        pattern: str,
        search_root: Union[str, CandidatePath, None] = None,
    ) -> WalkResult:
        """
        Walk and collect matches, newest first.

        Args:
            pattern: Glob pattern, auto-prefixed with '**/'
            search_root: Directory to start from, relative to the plan root

        Returns:
            WalkResult with sorted matches and skip counts
        """
        candidate = self._resolve_root(search_root)
        result = WalkResult(root=candidate.canonical, pattern=pattern)
        matches: List[MatchRecord] = []

        for event in self.events(pattern, candidate):
            if event.kind is WalkEventKind.FILE_MATCH:
                matches.append(event.match)
            elif event.kind is WalkEventKind.ENTER_DIR:
                result.directories_visited += 1
            elif event.kind is WalkEventKind.SKIP and event.reason is not None:
                result.skipped[event.reason] = result.skipped.get(event.reason, 0) + 1

        result.matches = sort_newest_first(matches)
        if result.truncated:
            logger.info(f"Walk of {candidate.canonical} was truncated: {result.skipped}")
        return result
