"""delete-file: remove one text file from the plan folder."""

import logging
import os
from typing import Any, Dict, Optional

from plansandbox.exceptions import AccessDeniedError, FileOperationError, SandboxError
from plansandbox.filesystem.data_models import CandidatePath

from .base import PlanContext, ToolStateInfo, check_text_file, locate_plan_file, tool_parameters
from .tool_response import ToolResult

logger = logging.getLogger(__name__)


class DeleteFileTool:
    """
    Deletes a text file from the root plan folder.

    A file that is not in the root plan folder is looked up in the
    current sub-plan's folder as well. Directories are never deleted.
    """

    name = "delete-file"
    description = (
        "Delete a text-based file. The path is relative to the root plan folder. "
        "Directories and binary files cannot be deleted."
    )

    def __init__(self, context: PlanContext):
        self.context = context

    @property
    def parameters(self) -> Dict[str, Any]:
        return tool_parameters(self)

    async def execute(self, file_path: str) -> ToolResult:
        """
        Delete a file.

        Args:
            file_path: File path relative to the root plan folder.
        """
        logger.info(f"DeleteFileTool input: file_path={file_path!r}")
        if not file_path or not file_path.strip():
            return ToolResult.failure("Error: file_path parameter is required")

        try:
            candidate = self._locate(file_path)
            self._delete(candidate)
        except SandboxError as e:
            logger.warning(f"delete-file failed for '{file_path}': {e}")
            self._audit(file_path, False, {"error": e.error_code})
            return ToolResult.failure(f"Error: {e.user_message}")

        self._audit(str(candidate.canonical), True)
        return ToolResult.success(
            f"File deleted successfully: {candidate.relative}",
            data={"path": candidate.relative},
        )

    def _locate(self, file_path: str) -> CandidatePath:
        check_text_file(self.context.config, file_path)
        return locate_plan_file(self.context, file_path)

    def _delete(self, candidate: CandidatePath):
        target = candidate.lexical
        if os.path.isdir(target) and not os.path.islink(target):
            raise AccessDeniedError(
                f"Cannot delete a directory: {candidate.relative}",
                path=candidate.raw,
                user_message=f"Cannot delete a directory: {candidate.relative}",
            )
        try:
            # A symlink is removed itself; its target is left alone
            os.unlink(target)
        except OSError as e:
            raise FileOperationError(
                f"Failed to delete {candidate.relative}: {e}",
                path=candidate.raw,
                operation="delete",
            ) from e
        logger.info(f"Deleted file {target}")

    def _audit(self, path: str, success: bool, details: Optional[Dict[str, Any]] = None):
        if self.context.audit:
            self.context.audit.log_operation("delete", path, success, details)

    def current_state(self) -> ToolStateInfo:
        return ToolStateInfo(
            key=self.context.service_group or self.name,
            state=f"Deleting files under root plan folder: {self.context.confinement.jail_root}",
        )

    async def cleanup(self, plan_id: str) -> None:
        """Nothing is held between calls."""
