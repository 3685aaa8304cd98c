"""
Ignore-file rules for directory walks.

Rules use the conventional ignore-file syntax (the one .gitignore uses)
and are compiled with pathspec. The *ignore root* is the jail root
normally, or the real target of the external-link directory when a
search starts inside it. Ignore files are read from the ignore root and
from every directory below it; each file applies to its own directory
tree, with paths relative to that directory.
"""

from __future__ import annotations

import logging
import os
import threading
from fnmatch import fnmatchcase
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple, Union

import pathspec

from .confinement import is_within

logger = logging.getLogger(__name__)

PathLike = Union[str, os.PathLike]


def _clean_lines(lines: Iterable[str]) -> List[str]:
    """Drop blank lines and comments, keep order."""
    cleaned = []
    for line in lines:
        stripped = line.rstrip("\r\n")
        if not stripped.strip() or stripped.lstrip().startswith("#"):
            continue
        cleaned.append(stripped)
    return cleaned


class IgnoreRuleSet:
    """
    Ordered include/exclude rules.

    The last matching rule wins, so a later '!pattern' re-includes a path
    excluded by an earlier rule.

    Example:
        >>> rules = IgnoreRuleSet.from_lines(["build/", "!build/out.txt"])
        >>> rules.is_ignored("build/tmp.o")
        True
        >>> rules.is_ignored("build/out.txt")
        False
    """

    def __init__(self, lines: Sequence[str] = (), source: Optional[str] = None):
        self.lines = _clean_lines(lines)
        self.source = source
        self._spec = pathspec.GitIgnoreSpec.from_lines(self.lines)
        # Same rules with negations turned positive: matches when any rule does
        self._any_rule_spec = pathspec.GitIgnoreSpec.from_lines(
            [line[1:] if line.startswith("!") else line for line in self.lines]
        )
        self._negations = [
            line[1:].strip().lstrip("/") for line in self.lines if line.startswith("!")
        ]

    @classmethod
    def from_lines(cls, lines: Iterable[str]) -> "IgnoreRuleSet":
        return cls(list(lines))

    @classmethod
    def load(cls, directory: PathLike, file_names: Sequence[str]) -> "IgnoreRuleSet":
        """
        Read ignore files from a directory.

        Files are read in the given order; rules from later files override
        earlier ones. Missing files are skipped silently, unreadable ones
        with a warning.

        Args:
            directory: Directory holding the ignore files
            file_names: Ignore file names, e.g. ['.gitignore', '.ignore']

        Returns:
            Combined rule set (empty if no file was found)
        """
        root = Path(directory)
        lines: List[str] = []
        loaded = []
        for name in file_names:
            path = root / name
            if not path.is_file():
                continue
            try:
                lines.extend(path.read_text(encoding="utf-8", errors="replace").splitlines())
                loaded.append(name)
            except OSError as e:
                logger.warning(f"Could not read ignore file {path}: {e}")

        if loaded:
            logger.debug(f"Loaded ignore rules from {root}: {', '.join(loaded)}")
        return cls(lines, source=str(root))

    def __bool__(self) -> bool:
        return bool(self.lines)

    def __len__(self) -> int:
        return len(self.lines)

    def _prepare(self, relative_path: str, is_dir: bool) -> Optional[str]:
        path = relative_path.replace("\\", "/").strip("/")
        if not path:
            return None
        return path + "/" if is_dir else path

    def is_ignored(self, relative_path: str, is_dir: bool = False) -> bool:
        """
        Check a path relative to the ignore root.

        Args:
            relative_path: Relative path with '/' or '\\' separators
            is_dir: Whether the path is a directory (enables 'name/' rules)

        Returns:
            True if the last matching rule excludes the path
        """
        if not self.lines:
            return False
        path = self._prepare(relative_path, is_dir)
        if path is None:
            return False
        return bool(self._spec.match_file(path))

    def verdict(self, relative_path: str, is_dir: bool = False) -> Optional[bool]:
        """
        Like is_ignored, but None when no rule matches the path at all.

        Lets a nested rule set leave the decision to the sets above it.
        """
        if not self.lines:
            return None
        path = self._prepare(relative_path, is_dir)
        if path is None:
            return None
        if not self._any_rule_spec.match_file(path):
            return None
        return bool(self._spec.match_file(path))

    def should_skip_directory(self, relative_dir: str) -> bool:
        """
        Check whether a walk may skip a whole directory.

        True only when the directory is ignored and no negation rule could
        re-include something beneath it.
        """
        if not self.is_ignored(relative_dir, is_dir=True):
            return False
        return not self.could_reinclude_under(relative_dir)

    def could_reinclude_under(self, relative_dir: str) -> bool:
        """Whether a negation rule may match something beneath the directory."""
        dir_segments = relative_dir.replace("\\", "/").strip("/").split("/")
        for negation in self._negations:
            body = negation.rstrip("/")
            if "/" not in body or body.startswith("**"):
                # Floating rule, may match at any depth
                return True
            segments = body.split("/")
            if len(segments) <= len(dir_segments) and "**" not in segments:
                continue
            for dir_seg, rule_seg in zip(dir_segments, segments):
                if rule_seg == "**":
                    return True
                if not fnmatchcase(dir_seg, rule_seg):
                    break
            else:
                return True
        return False


class IgnoreStack:
    """
    Rule sets from the ignore root down to the directory being walked.

    Each set comes from the ignore files of one directory (its *base*),
    applies only beneath that directory, and sees paths relative to it.
    A set from a deeper directory overrides the sets above it, as nested
    .gitignore files do. Stacks are immutable; push returns a new one.

    Example:
        >>> stack = IgnoreStack().push("", IgnoreRuleSet.from_lines(["*.tmp"]))
        >>> stack = stack.push("sub", IgnoreRuleSet.from_lines(["*.log", "!keep.tmp"]))
        >>> stack.is_ignored("sub/x.log"), stack.is_ignored("x.log")
        (True, False)
        >>> stack.is_ignored("sub/keep.tmp")
        False
    """

    def __init__(self, layers: Tuple[Tuple[str, IgnoreRuleSet], ...] = ()):
        self.layers = layers

    def push(self, base: str, rules: IgnoreRuleSet) -> "IgnoreStack":
        """
        Add the rules of a directory.

        Args:
            base: Directory of the ignore files, relative to the ignore root ('' for the root)
            rules: Its rule set; an empty set leaves the stack unchanged
        """
        if not rules:
            return self
        return IgnoreStack(self.layers + ((base.replace("\\", "/").strip("/"), rules),))

    def __bool__(self) -> bool:
        return bool(self.layers)

    def __len__(self) -> int:
        return len(self.layers)

    def _scoped(self, relative_path: str) -> Iterator[Tuple[IgnoreRuleSet, str]]:
        """Rule sets that apply to a path, shallowest first, with the path relative to each base."""
        path = relative_path.replace("\\", "/").strip("/")
        for base, rules in self.layers:
            if not base:
                yield rules, path
            elif path.startswith(base + "/"):
                yield rules, path[len(base) + 1:]

    def is_ignored(self, relative_path: str, is_dir: bool = False) -> bool:
        """Check a path relative to the ignore root against every applicable set."""
        ignored = False
        for rules, scoped_path in self._scoped(relative_path):
            verdict = rules.verdict(scoped_path, is_dir)
            if verdict is not None:
                ignored = verdict
        return ignored

    def should_skip_directory(self, relative_dir: str) -> bool:
        """True when the directory is ignored and no applicable negation could re-include its content."""
        if not self.is_ignored(relative_dir, is_dir=True):
            return False
        return not any(
            rules.could_reinclude_under(scoped_dir) for rules, scoped_dir in self._scoped(relative_dir)
        )


def determine_ignore_root(
    search_path: PathLike,
    jail_root: PathLike,
    link_dir_name: str = "linked_external",
) -> Path:
    """
    Pick the directory whose ignore files apply to a search.

    Args:
        search_path: Lexical (not symlink-resolved) absolute search root
        jail_root: Canonical plan root
        link_dir_name: Name of the external-link directory inside the plan root

    Returns:
        Real target of the external link when the search lies under it,
        otherwise the jail root
    """
    link = Path(jail_root) / link_dir_name
    if is_within(link, search_path):
        try:
            return Path(os.path.realpath(link, strict=True))
        except OSError as e:
            logger.warning(f"Cannot resolve external link {link}, using it as ignore root: {e}")
            return link
    return Path(jail_root)


class IgnoreRuleCache:
    """
    Rule sets keyed by (jail root, directory holding the ignore files).

    Reads of existing entries take no lock; building a missing entry is
    done under a lock so each rule set is loaded once.
    """

    def __init__(self):
        self._entries: Dict[Tuple[str, str], IgnoreRuleSet] = {}
        self._lock = threading.Lock()

    def get(
        self,
        jail_root: PathLike,
        directory: PathLike,
        file_names: Sequence[str],
    ) -> IgnoreRuleSet:
        """Return the cached rule set of a directory, loading it on first use."""
        key = (os.fspath(jail_root), os.fspath(directory))
        rules = self._entries.get(key)
        if rules is not None:
            return rules

        with self._lock:
            rules = self._entries.get(key)
            if rules is None:
                rules = IgnoreRuleSet.load(directory, file_names)
                self._entries[key] = rules
        return rules

    def invalidate(self, jail_root: PathLike) -> int:
        """
        Drop every entry of a plan root.

        Returns:
            Number of entries removed
        """
        root = os.fspath(jail_root)
        with self._lock:
            stale = [key for key in self._entries if key[0] == root]
            for key in stale:
                del self._entries[key]
        return len(stale)

    def __len__(self) -> int:
        return len(self._entries)
