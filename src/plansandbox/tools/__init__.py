"""
Agent-facing tools bound to one plan.

Provides:
- list-files, glob-files, read-file, write-file, delete-file and bash tools
- Tool protocol, state reporting and OpenAI schema generation
"""

from typing import TYPE_CHECKING, Dict, Optional

from plansandbox.filesystem.ignore import IgnoreRuleCache
from plansandbox.filesystem.plans import PlanDirectoryManager

from .base import (
    PlanContext,
    Tool,
    ToolStateInfo,
    check_text_file,
    current_state_with_error_handler,
    execute_and_record,
    human_size,
    locate_plan_file,
    to_openai_schema,
    tool_parameters,
)
from .bash import BashTool
from .delete_file import DeleteFileTool
from .glob_files import GlobFilesTool, format_walk_result
from .list_files import ListFilesTool
from .read_file import ReadFileTool
from .schema import generate_openai_tool_schema
from .tool_response import ToolResult
from .write_file import WriteFileTool

if TYPE_CHECKING:
    from plansandbox.audit import AuditLogger


def build_tools(
    manager: PlanDirectoryManager,
    root_plan_id: str,
    current_plan_id: Optional[str] = None,
    service_group: Optional[str] = None,
    audit: Optional["AuditLogger"] = None,
    ignore_cache: Optional[IgnoreRuleCache] = None,
) -> Dict[str, Tool]:
    """
    Create the plan tools, keyed by tool name.

    Args:
        manager: Plan directory manager
        root_plan_id: Root plan whose folder bounds every tool
        current_plan_id: Sub-plan making the calls (default: the root plan)
        service_group: Group name reported in tool state
        audit: Optional audit logger (default: the manager's)
        ignore_cache: Ignore-rule cache to share between plans

    Returns:
        Dict mapping tool name to tool
    """
    context = PlanContext(
        manager=manager,
        root_plan_id=root_plan_id,
        current_plan_id=current_plan_id,
        service_group=service_group,
        audit=audit if audit is not None else manager.audit,
        ignore_cache=ignore_cache if ignore_cache is not None else IgnoreRuleCache(),
    )
    tools = [
        ListFilesTool(context),
        GlobFilesTool(context),
        ReadFileTool(context),
        WriteFileTool(context),
        DeleteFileTool(context),
        BashTool(context),
    ]
    return {tool.name: tool for tool in tools}


__all__ = [
    "BashTool",
    "DeleteFileTool",
    "GlobFilesTool",
    "ListFilesTool",
    "PlanContext",
    "ReadFileTool",
    "Tool",
    "ToolResult",
    "ToolStateInfo",
    "WriteFileTool",
    "build_tools",
    "check_text_file",
    "current_state_with_error_handler",
    "execute_and_record",
    "format_walk_result",
    "generate_openai_tool_schema",
    "human_size",
    "locate_plan_file",
    "to_openai_schema",
    "tool_parameters",
]
