"""
Shell command execution with a persistent per-plan process.

A ShellSession runs one command at a time in its own process group.
Commands that outlive the timeout keep running: the caller polls them
with an empty command and stops them with 'ctrl+c'.

Output is drained by two reader tasks (stdout and stderr). After the
process exits the readers are joined with a short timeout, so a child
that keeps a pipe open cannot block the caller.
"""

import asyncio
import logging
import os
import shutil
import time
from functools import lru_cache
from typing import Dict, List, Optional, Tuple

import psutil

from plansandbox.config import SandboxConfig
from plansandbox.exceptions import ToolExecutionError

from .data_models import ExecutionResult

logger = logging.getLogger(__name__)

INTERRUPT_COMMAND = "ctrl+c"

# Seconds between exit checks while waiting on a process
EXIT_POLL_INTERVAL = 0.05


@lru_cache(maxsize=1)
def default_shell_path() -> str:
    """
    Shell used when none is configured: bash, then sh, from PATH.

    Computed once per process; recomputing gives the same answer.
    """
    for name in ("bash", "sh"):
        found = shutil.which(name)
        if found:
            return found
    return "/bin/sh"


def build_shell_env(shell_path: str, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    """
    Environment for commands: the current environment with pagers disabled.

    Args:
        shell_path: Shell that runs the command
        extra: Additional variables, applied last

    Returns:
        Environment dictionary
    """
    env = dict(os.environ)
    env.update({
        "LANG": "en_US.UTF-8",
        "SHELL": shell_path,
        "PAGER": "cat",
        "GIT_PAGER": "cat",
        "MANPAGER": "cat",
        "LESS": "-R",
        "MORE": "-R",
    })
    if extra:
        env.update(extra)
    return env


def _truncate(text: str, max_bytes: int) -> Tuple[str, bool]:
    """
    Truncate text to max_bytes with indicator.

    Returns:
        Tuple of (truncated_text, was_truncated)
    """
    if len(text) <= max_bytes:
        return text, False
    return text[:max_bytes] + f"\n... (truncated, limit: {max_bytes} bytes)", True


def signal_process_tree(pid: int, kill: bool = False) -> int:
    """
    Send SIGTERM (or SIGKILL) to a process and all its descendants.

    Args:
        pid: Root process id
        kill: Send SIGKILL instead of SIGTERM

    Returns:
        Number of processes signalled
    """
    try:
        parent = psutil.Process(pid)
        processes = parent.children(recursive=True) + [parent]
    except psutil.NoSuchProcess:
        return 0

    signalled = 0
    for proc in processes:
        try:
            if kill:
                proc.kill()
            else:
                proc.terminate()
            signalled += 1
        except psutil.NoSuchProcess:
            # Exited between listing and signalling
            continue
    return signalled


async def wait_for_exit(process: asyncio.subprocess.Process, timeout: Optional[float]) -> bool:
    """
    Wait until the process itself exits, ignoring its pipes.

    Process.wait() only returns once stdout and stderr are closed, which a
    background child can postpone indefinitely. The return code is set as
    soon as the shell exits, so it is polled instead.

    Args:
        process: Process to wait on
        timeout: Maximum seconds to wait (None waits forever)

    Returns:
        True if the process exited within the timeout
    """
    deadline = None if timeout is None else time.monotonic() + timeout
    while process.returncode is None:
        if deadline is not None and time.monotonic() >= deadline:
            return False
        await asyncio.sleep(EXIT_POLL_INTERVAL)
    return True


class ShellSession:
    """
    One shell process slot for a plan.

    Example:
        ```python
        session = ShellSession(SandboxConfig(), working_directory="/plans/plan-1")

        result = await session.run("ls -la")
        print(result.output)

        # Long-running command
        result = await session.run("make all")
        if result.still_running:
            result = await session.run("")         # more logs
            result = await session.run("ctrl+c")   # stop it
        ```
    """

    def __init__(self, config: SandboxConfig, working_directory: str):
        """
        Initialize the session.

        Args:
            config: Sandbox configuration (timeouts, output limit, shell)
            working_directory: Directory commands start in
        """
        self.config = config
        self.working_directory = working_directory
        self.shell_path = config.shell_path or default_shell_path()
        self._process: Optional[asyncio.subprocess.Process] = None
        self._command: Optional[str] = None
        self._readers: List[asyncio.Task] = []
        self._stdout: List[str] = []
        self._stderr: List[str] = []
        self._lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self._process is not None and self._process.returncode is None

    @property
    def pid(self) -> Optional[int]:
        return self._process.pid if self._process is not None else None

    async def run(self, command: Optional[str], timeout: Optional[float] = None) -> ExecutionResult:
        """
        Run a command, poll the running one, or interrupt it.

        - '' (or whitespace) while a process runs: wait for more output
        - 'ctrl+c' while a process runs: terminate it
        - anything else: start a new command (a still-running previous
          command is terminated first)

        Args:
            command: Shell command text
            timeout: Seconds to wait before returning (default: config.command_timeout)

        Returns:
            ExecutionResult for this call

        Raises:
            ToolExecutionError: If the process cannot be started
        """
        async with self._lock:
            text = (command or "").strip()
            wait_for = timeout or self.config.command_timeout

            if not text:
                if not self.is_running:
                    return self._error_result(command or "", "No command given and no process is running.")
                return await self._collect(self._command or "", wait_for)

            if text.lower() == INTERRUPT_COMMAND:
                if not self.is_running:
                    return self._error_result(text, "No running process to interrupt.")
                await self.terminate()
                result = await self._collect(self._command or "", self.config.reader_join_timeout)
                result.stdout += "Process terminated by ctrl+c"
                return result

            if self.is_running:
                logger.info(f"Terminating still-running command before starting a new one: {self._command}")
                await self.terminate()
                await self._join_readers()

            await self._start(command)
            return await self._collect(command, wait_for)

    async def _start(self, command: str):
        for task in self._readers:
            if not task.done():
                task.cancel()
        self._readers = []
        self._stdout = []
        self._stderr = []
        try:
            self._process = await asyncio.create_subprocess_exec(
                self.shell_path,
                "-c",
                command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=self.working_directory,
                env=build_shell_env(self.shell_path),
                start_new_session=True,
            )
        except OSError as e:
            logger.error(f"Failed to start shell command: {e}")
            raise ToolExecutionError(
                f"Command execution failed: {e}",
                tool_name="bash",
                context={"command": command, "shell": self.shell_path},
            ) from e

        self._command = command
        self._readers = [
            asyncio.create_task(self._drain(self._process.stdout, self._stdout)),
            asyncio.create_task(self._drain(self._process.stderr, self._stderr)),
        ]
        logger.info(f"Started command (pid {self._process.pid}): {command}")

    @staticmethod
    async def _drain(stream: Optional[asyncio.StreamReader], sink: List[str]):
        if stream is None:
            return
        while True:
            line = await stream.readline()
            if not line:
                return
            text = line.decode("utf-8", errors="replace")
            logger.debug(text.rstrip("\n"))
            sink.append(text)

    async def _join_readers(self):
        """Wait briefly for the readers; cancel any that are still blocked."""
        if not self._readers:
            return
        done, pending = await asyncio.wait(self._readers, timeout=self.config.reader_join_timeout)
        for task in pending:
            logger.warning("Timeout waiting for output reader, cancelling it")
            task.cancel()
        for task in done:
            if not task.cancelled() and task.exception() is not None:
                logger.error(f"Output reader failed: {task.exception()}")
        self._readers = []

    def _take_output(self) -> Tuple[str, str]:
        stdout = "".join(self._stdout)
        stderr = "".join(self._stderr)
        self._stdout.clear()
        self._stderr.clear()
        return stdout, stderr

    async def _collect(self, command: str, timeout: float) -> ExecutionResult:
        """Wait for the current process up to timeout and return the output so far."""
        start = time.time()
        process = self._process
        timed_out = False

        try:
            if await wait_for_exit(process, timeout):
                await self._join_readers()
            else:
                timed_out = True
                logger.warning(f"Command still running after {timeout}s: {command}")
        except asyncio.CancelledError:
            logger.warning(f"Wait for command cancelled, killing process tree: {command}")
            if process.returncode is None:
                signal_process_tree(process.pid, kill=True)
            raise

        stdout, stderr = self._take_output()
        stdout, trunc_out = _truncate(stdout, self.config.max_output_bytes)
        stderr, trunc_err = _truncate(stderr, self.config.max_output_bytes)
        still_running = process.returncode is None

        return ExecutionResult(
            success=not still_running and process.returncode == 0,
            stdout=stdout,
            stderr=stderr,
            exit_code=process.returncode,
            still_running=still_running,
            timed_out=timed_out,
            duration_ms=int((time.time() - start) * 1000),
            cwd=self.working_directory,
            truncated=trunc_out or trunc_err,
            command=command,
        )

    def _error_result(self, command: str, message: str) -> ExecutionResult:
        return ExecutionResult(
            success=False,
            stdout="",
            stderr="",
            exit_code=None,
            still_running=False,
            timed_out=False,
            duration_ms=0,
            cwd=self.working_directory,
            command=command,
            error=message,
        )

    async def terminate(self) -> bool:
        """
        Stop the running process tree.

        Sends SIGTERM, waits config.terminate_grace_seconds, then SIGKILL.
        If this wait is cancelled the tree is killed at once and the
        cancellation is re-raised.

        Returns:
            True if a running process was stopped
        """
        process = self._process
        if process is None or process.returncode is not None:
            return False

        signal_process_tree(process.pid)
        try:
            if not await wait_for_exit(process, self.config.terminate_grace_seconds):
                logger.warning(f"Process {process.pid} ignored SIGTERM, killing it")
                signal_process_tree(process.pid, kill=True)
                await wait_for_exit(process, None)
        except asyncio.CancelledError:
            signal_process_tree(process.pid, kill=True)
            raise

        logger.info(f"Shell process {process.pid} terminated")
        return True

    async def close(self):
        """Terminate any running process and release the readers."""
        await self.terminate()
        await self._join_readers()
        self._process = None
        self._command = None
