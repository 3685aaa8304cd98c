"""glob-files: recursive pattern search inside the plan folder."""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from plansandbox.exceptions import FileOperationError, PathNotFoundError, SandboxError
from plansandbox.filesystem.data_models import MatchRecord, WalkResult
from plansandbox.filesystem.walker import DirectoryWalker

from .base import PlanContext, ToolStateInfo, human_size, tool_parameters
from .tool_response import ToolResult

logger = logging.getLogger(__name__)

SEPARATOR = "=" * 60


def format_match(match: MatchRecord) -> str:
    modified = match.modified_datetime
    if modified is None:
        return f"{match.relative_path} (error reading file info)"
    return f"{match.relative_path} ({human_size(match.size)}, modified: {modified.isoformat()})"


def format_walk_result(result: WalkResult, glob_pattern: str, target_directory: Optional[str] = None) -> str:
    """Render a walk result as the text returned to the agent."""
    lines: List[str] = [f"Glob results for pattern '{glob_pattern}':"]
    if target_directory:
        lines.append(f"Search directory: {target_directory}")
    lines.append(SEPARATOR)

    if not result.matches:
        lines.append("No files found matching the pattern.")
    else:
        lines.append(f"Found {result.total_matches} file(s):")
        lines.append("")
        lines.extend(format_match(m) for m in result.matches)

    if result.truncated:
        lines.append("")
        lines.append(
            "Note: the search was truncated. Some directories exceeded the maximum depth "
            "or path length and were not searched."
        )
    return "\n".join(lines) + "\n"


class GlobFilesTool:
    """
    Finds files by glob pattern, newest first.

    Patterns are matched against paths relative to the search directory
    and are prefixed with '**/' unless they already start with it, so
    '*.md' finds markdown files at any depth.
    """

    name = "glob-files"
    description = (
        "Find files matching a glob pattern (e.g. '*.py', 'src/**/*.ts', '*{test,spec}*') in the root plan "
        "folder or one of its directories. Results are sorted by modification time, newest first. "
        "Files excluded by .gitignore/.ignore are skipped."
    )

    def __init__(self, context: PlanContext):
        self.context = context

    @property
    def parameters(self) -> Dict[str, Any]:
        return tool_parameters(self)

    async def execute(self, glob_pattern: str, target_directory: Optional[str] = None) -> ToolResult:
        """
        Search for files matching a glob pattern.

        Args:
            glob_pattern: Glob pattern to match, relative to the search directory.
            target_directory: Directory to search in, relative to the root plan folder. Defaults to the root plan folder.
        """
        logger.info(f"GlobFilesTool input: glob_pattern={glob_pattern!r}, target_directory={target_directory!r}")
        if not glob_pattern or not glob_pattern.strip():
            return ToolResult.failure("Error: glob_pattern parameter is required")

        normalized_target = None
        try:
            confinement = self.context.confinement
            if target_directory:
                normalized_target = confinement.normalize(target_directory)
            walker = DirectoryWalker(confinement, self.context.ignore_cache)
            result = await asyncio.to_thread(walker.walk, glob_pattern, normalized_target)
        except PathNotFoundError:
            return ToolResult.failure(f"Error: Target directory does not exist: {normalized_target or '.'}")
        except FileOperationError:
            return ToolResult.failure(f"Error: Target path is not a directory: {normalized_target}")
        except SandboxError as e:
            logger.warning(f"glob-files rejected '{target_directory}': {e}")
            return ToolResult.failure(f"Error: {e.user_message}")
        except ValueError as e:
            return ToolResult.failure(f"Error: Invalid glob pattern '{glob_pattern}': {e}")

        return ToolResult.success(
            format_walk_result(result, glob_pattern, normalized_target),
            data=result.to_dict(),
        )

    def current_state(self) -> ToolStateInfo:
        return ToolStateInfo(
            key=self.context.service_group or self.name,
            state=f"Searching files under root plan folder: {self.context.confinement.jail_root}",
        )

    async def cleanup(self, plan_id: str) -> None:
        """Drop cached ignore rules of the plan."""
        removed = self.context.ignore_cache.invalidate(self.context.manager.root_plan_directory(plan_id))
        logger.debug(f"Dropped {removed} cached ignore rule set(s) for plan {plan_id}")
