"""Shell command execution for the tmux layer.

Runs one shell command line per call in an asyncio subprocess and
returns its captured output. Failures carry both the error message and
whatever the command wrote to stderr so callers can decide whether to
surface or tolerate them. There are no retries here.
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal

from pydantic import BaseModel, ConfigDict

logger = logging.getLogger(__name__)


class CommandResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    stdout: str
    stderr: str = ""


class CommandRunner:
    """Executes command lines through the system shell.

    Each command runs in its own process group. If the awaiting task is
    cancelled (or ``timeout`` expires) while it is still running, the
    whole group is killed before control returns, so neither the shell
    nor anything it started outlives the caller.
    """

    def __init__(self, timeout: float | None = None) -> None:
        self._timeout = timeout

    @property
    def timeout(self) -> float | None:
        return self._timeout

    async def run(self, command: str) -> CommandResult:
        """Run ``command`` and return its trimmed stdout and raw stderr.

        Raises:
            CommandError: If the command cannot be started, exits
                non-zero, or exceeds the timeout.
        """
        logger.debug("Running: %s", command)
        try:
            process = await asyncio.create_subprocess_shell(
                command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                # Own process group, so a kill reaches everything the shell started
                start_new_session=True,
            )
        except OSError as e:
            raise CommandError(f"Failed to start command: {e}", command=command) from e

        try:
            stdout_bytes, stderr_bytes = await asyncio.wait_for(
                process.communicate(), timeout=self._timeout
            )
        except asyncio.TimeoutError:
            _kill(process)
            await process.wait()
            raise CommandError(
                f"Command timed out after {self._timeout}s", command=command
            ) from None
        except asyncio.CancelledError:
            _kill(process)
            raise

        stdout = stdout_bytes.decode("utf-8", errors="replace")
        stderr = stderr_bytes.decode("utf-8", errors="replace")

        if process.returncode != 0:
            raise CommandError(
                f"Command failed: {command}",
                stderr=stderr,
                command=command,
                returncode=process.returncode,
            )
        return CommandResult(stdout=stdout.rstrip(), stderr=stderr)


def _kill(process: asyncio.subprocess.Process) -> None:
    """SIGKILL the shell and every process in its group."""
    try:
        os.killpg(process.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass


class CommandError(Exception):
    """Raised when an external command fails or exits non-zero."""

    def __init__(
        self,
        message: str,
        stderr: str = "",
        command: str = "",
        returncode: int | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.stderr = stderr
        self.command = command
        self.returncode = returncode
