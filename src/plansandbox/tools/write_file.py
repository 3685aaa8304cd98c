"""write-file: create, overwrite or append to a text file in the plan folder."""

import asyncio
import logging
import os
from typing import Any, Dict, Literal, Optional

from plansandbox.exceptions import FileOperationError, SandboxError
from plansandbox.filesystem.data_models import CandidatePath

from .base import PlanContext, ToolStateInfo, check_text_file, tool_parameters
from .tool_response import ToolResult

logger = logging.getLogger(__name__)

WRITE_MODES = ("write", "append")


class WriteFileTool:
    """
    Writes a text file in the root plan folder.

    The target does not have to exist: a new file (and any missing parent
    directories) is created as long as the path resolves inside the plan
    folder. Writes through a symlink land on its confined target.
    """

    name = "write-file"
    description = (
        "Write a text-based file. The path is relative to the root plan folder. "
        "mode 'write' creates or overwrites the file, 'append' adds to its end. "
        "Missing parent directories are created."
    )

    def __init__(self, context: PlanContext):
        self.context = context

    @property
    def parameters(self) -> Dict[str, Any]:
        return tool_parameters(self)

    async def execute(
        self,
        file_path: str,
        contents: str,
        mode: Literal["write", "append"] = "write",
    ) -> ToolResult:
        """
        Write a file.

        Args:
            file_path: File path relative to the root plan folder.
            contents: Text to write.
            mode: 'write' to create or overwrite the file, 'append' to add to its end.
        """
        logger.info(f"WriteFileTool input: file_path={file_path!r}, mode={mode!r}, size={len(contents or '')}")
        if not file_path or not file_path.strip():
            return ToolResult.failure("Error: file_path parameter is required")
        if contents is None:
            return ToolResult.failure("Error: contents parameter is required")
        if mode not in WRITE_MODES:
            return ToolResult.failure(f"Error: Invalid mode '{mode}'. Must be 'write' or 'append'.")
        if file_path.strip().endswith("/"):
            return ToolResult.failure(f"Error: Not a file path: {file_path.strip()}")

        try:
            check_text_file(self.context.config, file_path)
            candidate = self.context.confinement.resolve_and_confine(file_path)
            existed = await asyncio.to_thread(self._write, candidate, contents, mode)
        except SandboxError as e:
            logger.warning(f"write-file failed for '{file_path}': {e}")
            self._audit(file_path, False, {"error": e.error_code, "mode": mode})
            return ToolResult.failure(f"Error: {e.user_message}")

        if not existed:
            outcome = "created"
        elif mode == "append":
            outcome = "appended"
        else:
            outcome = "overwritten"
        self._audit(str(candidate.canonical), True, {"mode": mode, "outcome": outcome, "size": len(contents)})
        return ToolResult.success(
            f"File written successfully ({outcome}): {candidate.relative}",
            data={"path": candidate.relative, "outcome": outcome, "size": len(contents)},
        )

    @staticmethod
    def _write(candidate: CandidatePath, contents: str, mode: str) -> bool:
        """Write the file; returns whether it existed before."""
        target = candidate.canonical
        if target.is_dir():
            raise FileOperationError(
                f"Path is a directory: {candidate.relative}",
                path=candidate.raw,
                operation="write",
                user_message=f"Path is a directory: {candidate.relative}",
            )

        existed = candidate.verified and target.exists()
        try:
            if not candidate.verified:
                # New file: the missing segments lie under the confined, existing prefix
                target.parent.mkdir(parents=True, exist_ok=True)
            with open(target, "w" if mode == "write" else "a", encoding="utf-8") as f:
                f.write(contents)
                f.flush()
                os.fsync(f.fileno())
        except OSError as e:
            raise FileOperationError(
                f"Failed to write {candidate.relative}: {e}",
                path=candidate.raw,
                operation="write",
                user_message=f"Error writing file: {e}",
            ) from e

        logger.info(f"File written ({mode}): {target}")
        return existed

    def _audit(self, path: str, success: bool, details: Optional[Dict[str, Any]] = None):
        if self.context.audit:
            self.context.audit.log_operation("write", path, success, details)

    def current_state(self) -> ToolStateInfo:
        return ToolStateInfo(
            key=self.context.service_group or self.name,
            state=f"Writing files under root plan folder: {self.context.confinement.jail_root}",
        )

    async def cleanup(self, plan_id: str) -> None:
        """Nothing is held between calls."""
