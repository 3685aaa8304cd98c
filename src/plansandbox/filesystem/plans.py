"""Mapping of plan identifiers to plan root directories.

One root directory per top-level plan lives directly under the base
directory; sub-plans get a child directory of their root plan. Plan
lifecycle management creates and removes plan roots. This module only
locates them (and manages the external-folder link inside one).
"""

from __future__ import annotations

import logging
import os
import threading
from pathlib import Path
from typing import TYPE_CHECKING, Dict, Optional, Union

from plansandbox.config import SandboxConfig
from plansandbox.exceptions import AccessDeniedError, FileOperationError, PathNotFoundError

from .confinement import PathConfinement, is_within

if TYPE_CHECKING:
    from plansandbox.audit import AuditLogger

logger = logging.getLogger(__name__)


def validate_plan_id(plan_id: Optional[str]) -> str:
    """
    Check that a plan id is a single safe path segment.

    Raises:
        AccessDeniedError: If the id is empty, '.', '..' or contains a separator
    """
    if plan_id is None or not plan_id.strip():
        raise AccessDeniedError("Plan id is required but is empty", path=plan_id)
    if plan_id in (".", "..") or "/" in plan_id or "\\" in plan_id or "\x00" in plan_id:
        raise AccessDeniedError(f"Invalid plan id: '{plan_id}'", path=plan_id)
    return plan_id


class PlanDirectoryManager:
    """
    Locates plan root and sub-plan directories under a base directory.

    Example:
        >>> manager = PlanDirectoryManager("/srv/plans")
        >>> manager.root_plan_directory("plan-1")
        PosixPath('/srv/plans/plan-1')
        >>> manager.sub_plan_directory("plan-1", "plan-1-2")
        PosixPath('/srv/plans/plan-1/plan-1-2')
    """

    def __init__(
        self,
        base_directory: Union[str, os.PathLike],
        config: Optional[SandboxConfig] = None,
        audit: Optional["AuditLogger"] = None,
    ):
        """
        Initialize the manager.

        Args:
            base_directory: Directory that holds all plan roots
            config: Sandbox configuration shared by every plan
            audit: Optional audit logger handed to each plan's confinement
        """
        self.base_directory = Path(os.path.realpath(base_directory))
        self.config = config or SandboxConfig()
        self.audit = audit
        self._confinements: Dict[str, PathConfinement] = {}
        self._lock = threading.Lock()

    def root_plan_directory(self, root_plan_id: str) -> Path:
        """Canonical root directory of a top-level plan (not created here)."""
        plan_id = validate_plan_id(root_plan_id)
        path = Path(os.path.realpath(self.base_directory / plan_id))
        if not is_within(self.base_directory, path) or path == self.base_directory:
            raise AccessDeniedError(
                f"Plan directory for '{plan_id}' resolves outside {self.base_directory}",
                path=plan_id,
                jail_root=str(self.base_directory),
            )
        return path

    def sub_plan_directory(self, root_plan_id: str, plan_id: str) -> Path:
        """Directory of a sub-plan inside its root plan directory."""
        root = self.root_plan_directory(root_plan_id)
        sub_id = validate_plan_id(plan_id)
        path = Path(os.path.realpath(root / sub_id))
        if not is_within(root, path):
            raise AccessDeniedError(
                f"Sub-plan directory for '{sub_id}' resolves outside its root plan",
                path=sub_id,
                jail_root=str(root),
            )
        return path

    def confinement_for(self, root_plan_id: str) -> PathConfinement:
        """Confinement of a root plan, created once and reused."""
        root = self.root_plan_directory(root_plan_id)
        key = str(root)
        confinement = self._confinements.get(key)
        if confinement is None:
            with self._lock:
                confinement = self._confinements.setdefault(
                    key, PathConfinement(root, self.config, self.audit)
                )
        return confinement

    def forget(self, root_plan_id: str) -> None:
        """Drop the cached confinement of a finished plan."""
        root = self.root_plan_directory(root_plan_id)
        with self._lock:
            self._confinements.pop(str(root), None)

    # ========== External Folder Link ==========

    def external_link_path(self, root_plan_id: str) -> Path:
        return self.root_plan_directory(root_plan_id) / self.config.external_link_dir_name

    def link_external_folder(self, root_plan_id: str, target: Union[str, os.PathLike]) -> Path:
        """
        Point the plan's external-link directory at a host folder.

        An existing link is replaced. A real directory of the same name is
        never touched.

        Args:
            root_plan_id: Root plan id
            target: Existing host directory to expose

        Returns:
            Path of the link inside the plan root

        Raises:
            PathNotFoundError: If the plan root or target directory does not exist
            FileOperationError: If a non-link entry already uses the link name
        """
        root = self.root_plan_directory(root_plan_id)
        if not root.is_dir():
            raise PathNotFoundError(f"Plan directory does not exist: {root}", path=str(root))

        target_path = Path(os.path.realpath(target))
        if not target_path.is_dir():
            raise PathNotFoundError(f"External folder does not exist: {target}", path=str(target))

        link = root / self.config.external_link_dir_name
        if os.path.lexists(link):
            if not os.path.islink(link):
                raise FileOperationError(
                    f"Cannot create external link, '{link.name}' already exists and is not a link",
                    path=str(link),
                    operation="link",
                )
            link.unlink()

        link.symlink_to(target_path, target_is_directory=True)
        logger.info(f"Linked external folder {target_path} into plan {root_plan_id}")
        if self.audit:
            self.audit.log_operation("link_external", str(link), True, {"target": str(target_path)})
        return link

    def unlink_external_folder(self, root_plan_id: str) -> bool:
        """
        Remove the plan's external link if present.

        Returns:
            True if a link was removed
        """
        link = self.external_link_path(root_plan_id)
        if not os.path.islink(link):
            return False
        link.unlink()
        logger.info(f"Removed external folder link from plan {root_plan_id}")
        if self.audit:
            self.audit.log_operation("unlink_external", str(link), True)
        return True
