"""read-file: read a text file of the plan folder with line numbers."""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from plansandbox.exceptions import FileOperationError, SandboxError
from plansandbox.filesystem.data_models import CandidatePath

from .base import PlanContext, ToolStateInfo, check_text_file, locate_plan_file, tool_parameters
from .tool_response import ToolResult

logger = logging.getLogger(__name__)

EMPTY_FILE_MESSAGE = "File is empty."

TOO_LARGE_MESSAGE = (
    "File is too large ({total} lines, exceeds limit of {limit} lines). "
    "Please use one of the following approaches:\n"
    "1. Use offset and limit parameters to read specific line ranges (e.g., offset=1, limit=100)\n"
    "2. Use glob-files or bash (grep) to find relevant sections\n"
    "3. Set bypass_limit=true to read the entire file (use with caution for very large files)"
)


def number_lines(lines: List[str], first_line: int = 1) -> str:
    """Render lines as 'NNNNNN|content', with the line number right-aligned in six columns."""
    return "".join(f"{number:6d}|{line}\n" for number, line in enumerate(lines, first_line))


class ReadFileTool:
    """
    Reads a text file from the root plan folder.

    Like delete-file, a file missing from the root plan folder is looked
    up in the current sub-plan's folder. Long files must be read in
    ranges unless the caller bypasses the limit.
    """

    name = "read-file"
    description = (
        "Read a text-based file; each line is prefixed with its line number. "
        "The path is relative to the root plan folder. "
        "Use offset and limit to read part of a large file."
    )

    def __init__(self, context: PlanContext):
        self.context = context

    @property
    def parameters(self) -> Dict[str, Any]:
        return tool_parameters(self)

    async def execute(
        self,
        file_path: str,
        offset: Optional[int] = None,
        limit: Optional[int] = None,
        bypass_limit: bool = False,
    ) -> ToolResult:
        """
        Read a file.

        Args:
            file_path: File path relative to the root plan folder.
            offset: First line to read, starting at 1.
            limit: Maximum number of lines to read.
            bypass_limit: Read the whole file even when it is longer than the full-read limit.
        """
        logger.info(f"ReadFileTool input: file_path={file_path!r}, offset={offset}, limit={limit}")
        if not file_path or not file_path.strip():
            return ToolResult.failure("Error: file_path parameter is required")
        if offset is not None and offset < 1:
            return ToolResult.failure("Error: offset must be >= 1 (line numbers start from 1)")
        if limit is not None and limit < 1:
            return ToolResult.failure("Error: limit must be >= 1")

        try:
            check_text_file(self.context.config, file_path)
            candidate = locate_plan_file(self.context, file_path)
            lines = await asyncio.to_thread(self._read_lines, candidate)
        except SandboxError as e:
            logger.warning(f"read-file failed for '{file_path}': {e}")
            return ToolResult.failure(f"Error: {e.user_message}")

        total = len(lines)
        if not lines:
            return ToolResult.success(EMPTY_FILE_MESSAGE, data={"path": candidate.relative, "total_lines": 0})

        max_lines = self.context.config.max_lines_for_full_read
        if offset is None and limit is None and not bypass_limit and total > max_lines:
            return ToolResult.failure(
                TOO_LARGE_MESSAGE.format(total=total, limit=max_lines),
                data={"path": candidate.relative, "total_lines": total},
            )

        start = (offset or 1) - 1
        if start >= total:
            return ToolResult.failure(f"Error: offset exceeds file range (file has {total} lines)")
        end = total if limit is None else min(start + limit, total)

        return ToolResult.success(
            number_lines(lines[start:end], start + 1),
            data={
                "path": candidate.relative,
                "total_lines": total,
                "start_line": start + 1,
                "end_line": end,
            },
        )

    @staticmethod
    def _read_lines(candidate: CandidatePath) -> List[str]:
        target = candidate.canonical
        if target.is_dir():
            raise FileOperationError(
                f"Path is a directory: {candidate.relative}",
                path=candidate.raw,
                operation="read",
                user_message=f"Path is a directory: {candidate.relative}",
            )
        try:
            return target.read_text(encoding="utf-8", errors="replace").splitlines()
        except OSError as e:
            raise FileOperationError(
                f"Failed to read {candidate.relative}: {e}",
                path=candidate.raw,
                operation="read",
                user_message=f"Error reading file: {e}",
            ) from e

    def current_state(self) -> ToolStateInfo:
        return ToolStateInfo(
            key=self.context.service_group or self.name,
            state=f"Reading files under root plan folder: {self.context.confinement.jail_root}",
        )

    async def cleanup(self, plan_id: str) -> None:
        """Nothing is held between calls."""
