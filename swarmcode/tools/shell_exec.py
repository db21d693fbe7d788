"""Async shell command execution with a hard wall-clock timeout."""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import sys
import time
from dataclasses import dataclass
from typing import Protocol

from swarmcode.tools.command_history import CommandHistory, CommandRecord

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0

# Grace period for reaping a killed process group.
_REAP_TIMEOUT = 5.0


@dataclass
class CommandResult:
    """Result of a single shell command."""

    command: str
    stdout: str
    stderr: str
    exit_code: int
    timed_out: bool = False
    duration: float = 0.0

    @property
    def success(self) -> bool:
        return self.exit_code == 0 and not self.timed_out

    @property
    def output(self) -> str:
        """Combined output, stderr first when both streams have text."""
        if self.stdout and self.stderr:
            return f"{self.stderr}\n{self.stdout}"
        return self.stderr or self.stdout


class CommandRunner(Protocol):
    """Anything that can run a shell command on behalf of a worker."""

    async def run(
        self,
        command: str,
        cwd: str,
        *,
        worker_id: str = "",
        worker_name: str = "",
    ) -> CommandResult: ...


def _shell_argv(command: str) -> list[str]:
    if sys.platform == "win32":
        return ["cmd.exe", "/c", command]
    return ["/bin/bash", "-c", command]


def _kill_group(proc: asyncio.subprocess.Process) -> None:
    """Kill *proc* and every child it spawned."""
    try:
        if sys.platform == "win32":
            proc.kill()
        else:
            os.killpg(proc.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass


class CommandExecutor:
    """Runs shell commands and appends each one to the shared history.

    Usage:
        executor = CommandExecutor(CommandHistory(), timeout=30)
        result = await executor.run("node hello.js", cwd="/tmp/project")
        if not result.success:
            print(result.output)
    """

    def __init__(
        self,
        history: CommandHistory | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.history = history if history is not None else CommandHistory()
        self.timeout = timeout

    async def run(
        self,
        command: str,
        cwd: str,
        *,
        worker_id: str = "",
        worker_name: str = "",
    ) -> CommandResult:
        """Run *command* in *cwd*; never raises for operational failures."""
        started = time.monotonic()
        result = await self._spawn(command, cwd)
        result.duration = time.monotonic() - started

        if result.success:
            logger.info("Command succeeded: %s", command)
        else:
            logger.warning("Command failed (exit %s): %s", result.exit_code, command)

        self.history.add(
            CommandRecord(
                command=command,
                cwd=cwd,
                output=result.output,
                exit_code=result.exit_code,
                success=result.success,
                worker_id=worker_id,
                worker_name=worker_name,
                timed_out=result.timed_out,
                duration=result.duration,
            )
        )
        return result

    async def _spawn(self, command: str, cwd: str) -> CommandResult:
        try:
            proc = await asyncio.create_subprocess_exec(
                *_shell_argv(command),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=cwd,
                start_new_session=sys.platform != "win32",
            )
        except OSError as exc:
            return CommandResult(command=command, stdout="", stderr=str(exc), exit_code=-1)

        try:
            stdout_bytes, stderr_bytes = await asyncio.wait_for(
                proc.communicate(), timeout=self.timeout
            )
        except TimeoutError:
            _kill_group(proc)
            try:
                await asyncio.wait_for(proc.communicate(), timeout=_REAP_TIMEOUT)
            except TimeoutError:
                logger.warning("Process %s did not exit after kill", proc.pid)
            return CommandResult(
                command=command,
                stdout="",
                stderr=f"Command timed out after {self.timeout:g}s",
                exit_code=-1,
                timed_out=True,
            )

        return CommandResult(
            command=command,
            stdout=stdout_bytes.decode("utf-8", errors="replace"),
            stderr=stderr_bytes.decode("utf-8", errors="replace"),
            exit_code=proc.returncode if proc.returncode is not None else -1,
        )
