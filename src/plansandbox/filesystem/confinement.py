"""Path normalization and confinement to a plan root.

Agent-facing paths are relative strings. Every path handed back to a
caller has been canonicalized (symlinks resolved) and checked to be the
jail root or one of its descendants. Failures are closed: a path that
cannot be canonicalized is denied.
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import TYPE_CHECKING, List, Optional, Sequence, Tuple, Union

from plansandbox.config import SandboxConfig
from plansandbox.exceptions import AccessDeniedError

from .data_models import CandidatePath

if TYPE_CHECKING:
    from plansandbox.audit import AuditLogger

logger = logging.getLogger(__name__)

PathLike = Union[str, os.PathLike]
Mount = Tuple[Path, Path]


def _plan_segment_re(prefix: str) -> "re.Pattern[str]":
    return re.compile(rf"^{re.escape(prefix)}[^/]+/")


def normalize_path(raw: Optional[str], plan_prefix: str = "plan-") -> str:
    """
    Normalize a user-supplied path into a root-relative form.

    Trims whitespace, converts backslashes to '/', and strips leading
    separators, a leading './' and a leading plan-identifier segment
    (e.g. 'plan-123/'). Stripping repeats until nothing changes, so the
    function is idempotent.

    Args:
        raw: Path as supplied by the caller (None is treated as empty)
        plan_prefix: Prefix of plan identifier segments to strip

    Returns:
        Relative path without leading separator ('' for the root)
    """
    if raw is None:
        return ""

    plan_re = _plan_segment_re(plan_prefix)
    path = raw.replace("\\", "/")
    while True:
        previous = path
        path = path.strip().lstrip("/")
        if path.startswith("./"):
            path = path[2:]
        path = plan_re.sub("", path, count=1)
        if path == ".":
            path = ""
        if path == previous:
            return path


def is_within(root: PathLike, path: PathLike) -> bool:
    """
    Check component-wise whether path is root or a descendant of root.

    Both arguments are compared as given; canonicalize them first.
    '/plans/p10' is not within '/plans/p1'.
    """
    root_path = Path(root)
    target = Path(path)
    return target == root_path or target.is_relative_to(root_path)


def canonicalize(path: PathLike) -> Tuple[Path, bool]:
    """
    Resolve symlinks in an absolute path.

    If the target exists it is resolved strictly. Otherwise the deepest
    existing ancestor is resolved and the missing segments are appended
    literally.

    Args:
        path: Absolute, lexically normalized path

    Returns:
        Tuple of (canonical_path, verified). verified is False when part
        of the path does not exist yet.

    Raises:
        OSError: If resolution fails for any reason other than a missing
                 component (symlink loop, permission denied)
    """
    try:
        return Path(os.path.realpath(path, strict=True)), True
    except (FileNotFoundError, NotADirectoryError):
        pass

    existing = Path(path)
    missing: List[str] = []
    # lexists keeps dangling symlinks in the existing prefix so they get resolved
    while not os.path.lexists(existing):
        if existing.parent == existing:
            break
        missing.append(existing.name)
        existing = existing.parent

    base = Path(os.path.realpath(existing))
    return base.joinpath(*reversed(missing)), False


def resolve_path(jail_root: PathLike, relative: str, raw: Optional[str] = None) -> CandidatePath:
    """
    Resolve a relative path against the jail root.

    The path is first joined and collapsed lexically ('.' and '..'), then
    canonicalized with symlinks resolved. An absolute path is taken as is.

    Args:
        jail_root: Canonical plan root
        relative: Normalized relative path (or an absolute path)
        raw: Original user string, kept for error messages

    Returns:
        CandidatePath with lexical and canonical forms

    Raises:
        AccessDeniedError: If canonicalization fails
    """
    raw = relative if raw is None else raw
    lexical = Path(os.path.normpath(os.path.join(os.fspath(jail_root), relative or ".")))

    try:
        canonical, verified = canonicalize(lexical)
    except (OSError, RuntimeError, ValueError) as e:
        logger.warning(f"Could not canonicalize '{raw}' under {jail_root}: {e}")
        raise AccessDeniedError(
            f"Path '{raw}' could not be resolved: {e}",
            path=raw,
            jail_root=str(jail_root),
        ) from e

    return CandidatePath(
        raw=raw,
        relative=relative,
        lexical=lexical,
        canonical=canonical,
        verified=verified,
    )


def confine(
    jail_root: PathLike,
    candidate: CandidatePath,
    mounts: Sequence[Mount] = (),
) -> CandidatePath:
    """
    Return the candidate if it stays inside the jail root.

    Args:
        jail_root: Canonical plan root
        candidate: Resolved candidate path
        mounts: (lexical prefix, canonical target) pairs. A candidate whose
                lexical path is under a prefix may resolve into its target.

    Returns:
        The same candidate

    Raises:
        AccessDeniedError: If the canonical path is outside the jail root
    """
    mounted = any(
        is_within(prefix, candidate.lexical) and is_within(target, candidate.canonical)
        for prefix, target in mounts
    )
    if not mounted and not is_within(jail_root, candidate.canonical):
        logger.warning(
            f"Denied path '{candidate.raw}': {candidate.canonical} is outside {jail_root}"
        )
        raise AccessDeniedError(
            f"Path '{candidate.raw}' resolves outside the plan folder. "
            "All paths must be within the root-plan-folder.",
            path=candidate.raw,
            jail_root=str(jail_root),
            context={"resolved": str(candidate.canonical)},
        )
    return candidate


class PathConfinement:
    """
    Confines user paths to one plan root.

    Example:
        >>> confinement = PathConfinement("/plans/plan-1")
        >>> confinement.resolve_and_confine("plan-1/notes/today.md").canonical
        PosixPath('/plans/plan-1/notes/today.md')
        >>> confinement.resolve_and_confine("../plan-2/secret.txt")
        Traceback (most recent call last):
        ...
        AccessDeniedError: [ACCESS_DENIED] Path '../plan-2/secret.txt' resolves outside ...
    """

    def __init__(
        self,
        jail_root: PathLike,
        config: Optional[SandboxConfig] = None,
        audit: Optional["AuditLogger"] = None,
    ):
        """
        Initialize confinement for a plan root.

        The root is canonicalized but never created.

        Args:
            jail_root: Plan root directory
            config: Sandbox configuration (defaults are used if None)
            audit: Optional audit logger for denial records
        """
        self.config = config or SandboxConfig()
        self.jail_root = Path(os.path.realpath(jail_root))
        self.audit = audit

    def normalize(self, raw: Optional[str]) -> str:
        return normalize_path(raw, self.config.plan_id_prefix)

    def resolve(self, raw: Optional[str]) -> CandidatePath:
        """Normalize and resolve a path without checking containment."""
        return resolve_path(self.jail_root, self.normalize(raw), raw=raw or "")

    def resolve_and_confine(self, raw: Optional[str]) -> CandidatePath:
        """
        Normalize, resolve and confine a user-supplied path.

        Args:
            raw: Path as supplied by the agent

        Returns:
            Confined CandidatePath

        Raises:
            AccessDeniedError: If the path leaves the plan root or cannot be resolved
        """
        try:
            return confine(self.jail_root, self.resolve(raw), self.mounts())
        except AccessDeniedError as e:
            if self.audit:
                self.audit.log_denial(raw or "", str(self.jail_root), e.developer_message)
            raise

    def confine_absolute(self, path: str) -> CandidatePath:
        """
        Confine an absolute path as written, without stripping its leading '/'.

        Used for absolute paths found in shell commands, which must already
        point inside the plan root.
        """
        try:
            candidate = resolve_path(self.jail_root, path, raw=path)
            return confine(self.jail_root, candidate, self.mounts())
        except AccessDeniedError as e:
            if self.audit:
                self.audit.log_denial(path, str(self.jail_root), e.developer_message)
            raise

    def mounts(self) -> List[Mount]:
        """
        External mounts of this plan root.

        The external-link directory counts as a mount only while it is a
        symlink that resolves. It is looked up on every call because plan
        management may create it after this object.
        """
        if not self.config.allow_external_link:
            return []
        link = self.jail_root / self.config.external_link_dir_name
        if not os.path.islink(link):
            return []
        try:
            target = Path(os.path.realpath(link, strict=True))
        except OSError as e:
            logger.warning(f"External link {link} does not resolve: {e}")
            return []
        return [(link, target)]

    def boundary_for(self, canonical: PathLike) -> Path:
        """
        Root that bounds a canonical path: the mount target it lies in, or the plan root.
        """
        for _, target in self.mounts():
            if is_within(target, canonical) and not is_within(self.jail_root, canonical):
                return target
        return self.jail_root

    def contains(self, path: PathLike) -> bool:
        """Check whether an already canonical path is inside the plan root."""
        return is_within(self.jail_root, path)

    def relative_to_root(self, path: PathLike) -> str:
        """Return a canonical path relative to the plan root with '/' separators."""
        rel = Path(path).relative_to(self.jail_root).as_posix()
        return "" if rel == "." else rel
