"""Async runner for external commands (git, linters, build tools)."""

import asyncio
import shlex
from dataclasses import dataclass
from pathlib import Path

from deep_reviewer.core.exceptions import ProcessError, ProcessTimeoutError
from deep_reviewer.core.logging import get_logger

logger = get_logger("core.process")

DEFAULT_TIMEOUT = 60.0


@dataclass(frozen=True)
class ProcessResult:
    """Captured output of a finished command."""

    stdout: str
    stderr: str
    exit_code: int

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class ProcessRunner:
    """Runs commands with a timeout and captured output.

    With ``ignore_exit_code=True`` a non-zero exit status is returned to the
    caller instead of raised; linters use exit codes to signal findings.
    """

    def __init__(self, default_timeout: float = DEFAULT_TIMEOUT) -> None:
        self.default_timeout = default_timeout

    async def run(
        self,
        command: str,
        args: list[str] | tuple[str, ...] = (),
        *,
        cwd: str | Path | None = None,
        timeout: float | None = None,
        ignore_exit_code: bool = False,
    ) -> ProcessResult:
        """Run ``command args...`` and return its output.

        Raises:
            ProcessTimeoutError: the command ran longer than ``timeout``.
            ProcessError: the command could not start, or exited non-zero
                while ``ignore_exit_code`` is False.
        """
        timeout = timeout if timeout is not None else self.default_timeout
        display = shlex.join([command, *args])
        logger.debug(f"Running: {display} (cwd={cwd})")

        try:
            proc = await asyncio.create_subprocess_exec(
                command,
                *args,
                cwd=str(cwd) if cwd is not None else None,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except (FileNotFoundError, PermissionError) as e:
            raise ProcessError(display, None, str(e)) from e

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            logger.warning(f"Command timed out after {timeout:g}s: {display}")
            raise ProcessTimeoutError(display, timeout)
        except asyncio.CancelledError:
            proc.kill()
            await proc.wait()
            raise

        result = ProcessResult(
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
            exit_code=proc.returncode if proc.returncode is not None else -1,
        )

        if not result.ok and not ignore_exit_code:
            raise ProcessError(display, result.exit_code, result.stderr)

        return result
