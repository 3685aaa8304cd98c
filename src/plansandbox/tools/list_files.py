"""list-files: one directory listing inside the plan folder."""

import logging
import os
from typing import Any, Dict, List, Optional

from plansandbox.exceptions import SandboxError

from .base import PlanContext, ToolStateInfo, human_size, tool_parameters
from .tool_response import ToolResult

logger = logging.getLogger(__name__)

ROOT_ALIASES = ("", ".", "root")


class ListFilesTool:
    """
    Lists the entries of one directory inside the root plan folder.

    Example output:
        Files:
        docs
        [DIR] drafts/
        [FILE] notes.md (1.2 KB)
    """

    name = "list-files"
    description = (
        "List files and directories in a directory of the root plan folder. "
        "Paths are relative to the root plan folder; leave empty to list the folder itself."
    )

    def __init__(self, context: PlanContext):
        self.context = context

    @property
    def parameters(self) -> Dict[str, Any]:
        return tool_parameters(self)

    async def execute(self, file_path: Optional[str] = None) -> ToolResult:
        """
        List the contents of a directory.

        Args:
            file_path: Directory relative to the root plan folder. Empty, '.' or 'root' lists the root plan folder.
        """
        logger.info(f"ListFilesTool input: file_path={file_path!r}")
        try:
            confinement = self.context.confinement
            normalized = confinement.normalize(file_path)
            is_root = normalized in ROOT_ALIASES
            candidate = confinement.resolve_and_confine("" if is_root else normalized)
            target = candidate.canonical

            if not target.exists():
                return ToolResult.failure(f"Error: Directory does not exist: {normalized or '.'}")
            if not target.is_dir():
                return ToolResult.failure(f"Error: Path is not a directory: {normalized}")

            lines: List[str] = ["Files: "]
            if not is_root:
                lines.append(normalized)

            with os.scandir(target) as it:
                entries = sorted(it, key=lambda e: e.name)
            if not entries:
                lines.append("(empty directory)")
            for entry in entries:
                try:
                    if entry.is_dir():
                        lines.append(f"[DIR] {entry.name}/")
                    else:
                        lines.append(f"[FILE] {entry.name} ({human_size(entry.stat().st_size)})")
                except OSError as e:
                    logger.warning(f"Cannot read entry {entry.path}: {e}")
                    lines.append(f"[ERROR] {entry.name} (error reading)")

            return ToolResult.success(
                "\n".join(lines) + "\n",
                data={"path": normalized or ".", "entries": len(entries)},
            )
        except SandboxError as e:
            logger.warning(f"list-files rejected '{file_path}': {e}")
            return ToolResult.failure(f"Error: {e.user_message}")
        except OSError as e:
            logger.error(f"Error listing files: {file_path}: {e}")
            return ToolResult.failure(f"Error listing files: {e}")

    def current_state(self) -> ToolStateInfo:
        return ToolStateInfo(
            key=self.context.service_group or self.name,
            state=f"Listing files under root plan folder: {self.context.confinement.jail_root}",
        )

    async def cleanup(self, plan_id: str) -> None:
        """Nothing is held between calls."""
