"""bash: shell commands run from the root plan folder."""

import asyncio
import logging
from typing import Any, Dict, Optional

from plansandbox.exceptions import AccessDeniedError, SandboxError
from plansandbox.shell.executor import ShellSession
from plansandbox.shell.validators import validate_command_paths

from .base import PlanContext, ToolStateInfo, tool_parameters
from .tool_response import ToolResult

logger = logging.getLogger(__name__)

NO_OUTPUT_MESSAGE = "Command executed successfully with no output."


class BashTool:
    """
    Runs shell commands with the root plan folder as working directory.

    Before a command starts, the paths found in its text are checked
    against the root plan folder. The check is a heuristic over the raw
    text; it does not parse quoting or expansions.

    Each plan has one shell session. A command that outlives the timeout
    keeps running: call again with an empty command to read more of its
    output, or with 'ctrl+c' to stop it.
    """

    name = "bash"
    description = (
        "Execute a shell command in the root plan folder. All paths must stay within the root plan folder; "
        "use relative paths. Long-running commands keep running after the timeout: send an empty command "
        "to see more output or 'ctrl+c' to interrupt."
    )

    def __init__(self, context: PlanContext):
        self.context = context
        self._sessions: Dict[str, ShellSession] = {}
        self._sessions_lock = asyncio.Lock()

    @property
    def parameters(self) -> Dict[str, Any]:
        return tool_parameters(self)

    async def _session(self) -> ShellSession:
        plan_id = self.context.current_plan_id
        async with self._sessions_lock:
            session = self._sessions.get(plan_id)
            if session is None:
                working_directory = str(self.context.confinement.jail_root)
                session = ShellSession(self.context.config, working_directory)
                self._sessions[plan_id] = session
                logger.info(f"Using root plan directory as working directory: {working_directory}")
        return session

    async def execute(self, command: str, timeout: Optional[float] = None) -> ToolResult:
        """
        Execute a shell command.

        Args:
            command: Command to run. Empty to read more output of a running command, 'ctrl+c' to interrupt it.
            timeout: Seconds to wait for the command before returning with partial output.
        """
        logger.info(f"Bash command: {command}")
        try:
            validate_command_paths(command, self.context.confinement)
        except AccessDeniedError as e:
            logger.warning(f"Command path validation failed: {e.developer_message}")
            if self.context.audit:
                self.context.audit.log_operation("bash", command, False, {"reason": e.developer_message})
            return ToolResult.failure(
                f"Error: {e.developer_message}. All paths must be within the root-plan-folder."
            )
        except SandboxError as e:
            return ToolResult.failure(f"Error: {e.user_message}")

        try:
            session = await self._session()
            result = await session.run(command, timeout=timeout)
        except SandboxError as e:
            logger.error(f"Error executing bash command: {e}")
            return ToolResult.failure(f"Error executing command: {e.developer_message}")

        if self.context.audit and result.error is None:
            self.context.audit.log_operation(
                "bash", command, result.success, {"exit_code": result.exit_code}
            )

        output = result.output
        if not output.strip():
            output = NO_OUTPUT_MESSAGE
        is_error = result.error is not None or (not result.still_running and not result.success)
        return ToolResult(output=output, error=is_error, data=result.to_dict())

    def current_state(self) -> ToolStateInfo:
        working_dir = self.context.confinement.jail_root
        return ToolStateInfo(
            key=self.context.service_group or "default",
            state=f"Current Working Directory:\n{working_dir}\n",
        )

    async def cleanup(self, plan_id: str) -> None:
        """Terminate the plan's shell session, if any."""
        async with self._sessions_lock:
            session = self._sessions.pop(plan_id, None)
        if session is not None:
            await session.close()
        logger.info(f"Cleaned up resources for plan: {plan_id}")
