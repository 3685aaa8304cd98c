"""Symbolic link classification and per-walk cycle detection."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Hashable, Set, Union

from .confinement import is_within
from .data_models import SymlinkStatus

logger = logging.getLogger(__name__)

PathLike = Union[str, os.PathLike]


def is_symlink(path: PathLike) -> bool:
    """Check whether path itself is a symbolic link (never follows it)."""
    return os.path.islink(path)


def read_target(path: PathLike) -> str:
    """
    Read the raw target text of a symbolic link.

    Raises:
        OSError: If path is not a symlink or cannot be read
    """
    return os.readlink(path)


def canonical_target(symlink: PathLike) -> Path:
    """
    Resolve a symlink to the real path it finally points at.

    Raises:
        OSError: If the chain is dangling, loops, or cannot be read
    """
    return Path(os.path.realpath(symlink, strict=True))


def classify(symlink: PathLike, jail_root: PathLike) -> SymlinkStatus:
    """
    Classify a symbolic link relative to the jail root.

    A link is CIRCULAR_ANCESTOR when its real target is the jail root or
    one of its ancestors, or the link's own parent directory or one of
    its ancestors. Following such a link would re-enter a tree that is
    already being walked. Otherwise it is ESCAPES_JAIL when the target
    lies outside the jail root, and SAFE when inside.

    Any error while resolving the link counts as CIRCULAR_ANCESTOR.

    Args:
        symlink: Path of the link itself
        jail_root: Canonical plan root

    Returns:
        SymlinkStatus for the link
    """
    try:
        target = canonical_target(symlink)
        root = Path(os.path.realpath(jail_root, strict=True))
        parent = Path(os.path.realpath(Path(symlink).parent, strict=True))
    except (OSError, RuntimeError) as e:
        logger.debug(f"Treating symlink {symlink} as circular, resolution failed: {e}")
        return SymlinkStatus.CIRCULAR_ANCESTOR

    if is_within(target, root) or is_within(target, parent):
        logger.debug(f"Circular symlink: {describe(symlink)}")
        return SymlinkStatus.CIRCULAR_ANCESTOR

    if not is_within(root, target):
        logger.debug(f"Symlink escapes plan root {root}: {describe(symlink)}")
        return SymlinkStatus.ESCAPES_JAIL

    return SymlinkStatus.SAFE


def describe(symlink: PathLike) -> str:
    """Describe a symlink as 'link -> target (target: absolute)' for logs."""
    try:
        raw = read_target(symlink)
    except OSError as e:
        return f"{symlink} -> <unreadable: {e}>"
    absolute = os.path.realpath(symlink)
    return f"{symlink} -> {raw} (target: {absolute})"


def directory_identity(path: PathLike) -> Hashable:
    """
    Identity of a directory for cycle detection.

    Uses (st_dev, st_ino) of the followed path, falling back to the
    canonical path string when stat fails.
    """
    try:
        st = os.stat(path)
        return (st.st_dev, st.st_ino)
    except OSError:
        return os.path.realpath(path)


class VisitedSet:
    """
    Directory identities already entered during one walk.

    Created when a walk starts and dropped when it ends; never shared
    between walks or threads.
    """

    def __init__(self):
        self._seen: Set[Hashable] = set()

    def add(self, path: PathLike) -> bool:
        """
        Register a directory.

        Returns:
            True if the directory was new, False if it was already visited
            (the caller should skip its subtree)
        """
        identity = directory_identity(path)
        if identity in self._seen:
            return False
        self._seen.add(identity)
        return True

    def __contains__(self, path: PathLike) -> bool:
        return directory_identity(path) in self._seen

    def __len__(self) -> int:
        return len(self._seen)
