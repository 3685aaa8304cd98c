"""
Shared pieces of the plan tools.

A tool is anything that satisfies the Tool protocol: a name, a
description, a JSON parameter schema generated from its `execute`
signature, and the execute/current_state/cleanup calls. There is no
base class to inherit from.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Optional, Protocol, runtime_checkable

from plansandbox.config import SandboxConfig
from plansandbox.exceptions import PathNotFoundError, UnsupportedFileTypeError
from plansandbox.filesystem.confinement import PathConfinement
from plansandbox.filesystem.data_models import CandidatePath
from plansandbox.filesystem.ignore import IgnoreRuleCache
from plansandbox.filesystem.plans import PlanDirectoryManager

from .schema import generate_openai_tool_schema
from .tool_response import ToolResult

if TYPE_CHECKING:
    from plansandbox.audit import AuditLogger
    from plansandbox.registry import ResultRegistry

logger = logging.getLogger(__name__)


@dataclass
class ToolStateInfo:
    """
    State a tool reports to the planner between calls.

    Attributes:
        key: Group or tool name the state belongs to
        state: Free-form state text
    """

    key: str
    state: str

    def to_dict(self) -> Dict[str, str]:
        return {"key": self.key, "state": self.state}


@runtime_checkable
class Tool(Protocol):
    """Capability set every plan tool provides."""

    name: str
    description: str

    @property
    def parameters(self) -> Dict[str, Any]:
        ...

    async def execute(self, **kwargs: Any) -> ToolResult:
        ...

    def current_state(self) -> ToolStateInfo:
        ...

    async def cleanup(self, plan_id: str) -> None:
        ...


@dataclass
class PlanContext:
    """
    Everything a tool needs to know about the plan it works for.

    Attributes:
        manager: Maps plan ids to plan directories
        root_plan_id: Id of the top-level plan; its directory is the jail root
        current_plan_id: Id of the (sub-)plan making the calls
        service_group: Group name reported in tool state
        audit: Optional audit logger for mutations
        ignore_cache: Ignore rules shared by the walks of this plan
    """

    manager: PlanDirectoryManager
    root_plan_id: str
    current_plan_id: Optional[str] = None
    service_group: Optional[str] = None
    audit: Optional["AuditLogger"] = None
    ignore_cache: IgnoreRuleCache = field(default_factory=IgnoreRuleCache)

    def __post_init__(self):
        if self.current_plan_id is None:
            self.current_plan_id = self.root_plan_id

    @property
    def config(self) -> SandboxConfig:
        return self.manager.config

    @property
    def confinement(self) -> PathConfinement:
        return self.manager.confinement_for(self.root_plan_id)

    @property
    def is_sub_plan(self) -> bool:
        return self.current_plan_id != self.root_plan_id


def tool_parameters(tool: Tool) -> Dict[str, Any]:
    """JSON schema of a tool's `execute` parameters."""
    return generate_openai_tool_schema(tool.execute, tool.name, tool.description)["function"]["parameters"]


def to_openai_schema(tool: Tool) -> Dict[str, Any]:
    """OpenAI function-calling definition of a tool."""
    return {
        "type": "function",
        "function": {
            "name": tool.name,
            "description": tool.description,
            "parameters": tool.parameters,
        },
    }


def current_state_with_error_handler(tool: Tool, service_group: Optional[str] = None) -> ToolStateInfo:
    """
    Ask a tool for its state without letting a failure reach the planner.

    Returns:
        The tool's state, or a state entry describing the failure
    """
    try:
        return tool.current_state()
    except Exception as e:
        key = service_group or getattr(tool, "name", None) or "unknown"
        logger.error(f"Error getting tool state for '{key}': {e}")
        return ToolStateInfo(
            key=key,
            state=f"Error getting tool state for '{key}': {e}. You can continue with available information.",
        )


def check_text_file(config: SandboxConfig, file_path: str):
    """
    Refuse paths without a supported text extension.

    A path ending in '/' names a directory and is left to the caller.

    Raises:
        UnsupportedFileTypeError: If the extension is not a text type
    """
    normalized = file_path.strip()
    if normalized.endswith("/"):
        return
    if not config.is_supported_text_file(normalized):
        raise UnsupportedFileTypeError(
            f"Unsupported file type. Only text-based files are supported: {file_path}",
            path=file_path,
            extension=Path(normalized).suffix,
            user_message="Unsupported file type. Only text-based files are supported.",
        )


def locate_plan_file(context: PlanContext, file_path: str) -> CandidatePath:
    """
    Resolve an existing file in the root plan folder, then in the sub-plan folder.

    Raises:
        AccessDeniedError: If the path leaves the plan folder
        PathNotFoundError: If the file exists in neither folder
    """
    candidate = context.confinement.resolve_and_confine(file_path)
    if os.path.lexists(candidate.lexical):
        return candidate

    if context.is_sub_plan:
        sub_dir = context.manager.sub_plan_directory(context.root_plan_id, context.current_plan_id)
        if sub_dir.is_dir():
            sub_confinement = PathConfinement(sub_dir, context.config, context.audit)
            sub_candidate = sub_confinement.resolve_and_confine(file_path)
            if os.path.lexists(sub_candidate.lexical):
                return sub_candidate

    raise PathNotFoundError(
        f"File does not exist: {candidate.relative}",
        path=file_path,
        user_message=f"File does not exist: {candidate.relative}",
    )


def human_size(size: int) -> str:
    """Format a byte count: bytes below 1 KB, else one decimal in KB, MB or GB."""
    if size < 1024:
        return f"{size} B"
    value = size / 1024.0
    for unit in ("KB", "MB"):
        if value < 1024.0:
            return f"{value:.1f} {unit}"
        value /= 1024.0
    return f"{value:.1f} GB"


async def execute_and_record(
    tool: Tool,
    registry: "ResultRegistry",
    plan_id: str,
    entry_id: str,
    **tool_input: Any,
) -> ToolResult:
    """
    Run a tool for a parallel sub-task and store its result in the registry.

    Args:
        tool: Tool to run
        registry: Registry collecting sub-task results
        plan_id: Plan the sub-task belongs to
        entry_id: Id of the sub-task entry
        **tool_input: Arguments for the tool

    Returns:
        The tool result (also stored under entry_id)
    """
    registry.register(plan_id, entry_id, tool.name, dict(tool_input))
    try:
        result = await tool.execute(**tool_input)
    except Exception as e:
        logger.error(f"Tool '{tool.name}' failed for entry {entry_id}: {e}")
        result = ToolResult.failure(f"Error: {e}")
    registry.set_result(plan_id, entry_id, result.output)
    return result
