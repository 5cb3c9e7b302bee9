"""Bounded execution of external commands."""

import logging
import os
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path

from pkgrelay.errors import CommandError, CommandTimeoutError, ToolNotFoundError

logger = logging.getLogger(__name__)

# Keep only the end of long build logs in errors and traces
OUTPUT_TAIL_LINES = 40


@dataclass
class CommandResult:
    """Outcome of a finished external command."""

    argv: list[str]
    returncode: int
    stdout: str
    stderr: str
    duration: float

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def output_tail(self, lines: int = OUTPUT_TAIL_LINES) -> str:
        combined = (self.stdout + self.stderr).strip().splitlines()
        return "\n".join(combined[-lines:])


class CommandRunner:
    """Runs commands with a hard timeout and captured output."""

    def __init__(self, timeout: float = 3600, env: dict[str, str] | None = None):
        """Initialize the runner.

        Args:
            timeout: Default timeout in seconds for every command
            env: Extra environment variables merged over os.environ
        """
        self.timeout = timeout
        self.env = env or {}

    def run(
        self,
        argv: list[str],
        cwd: Path | None = None,
        env: dict[str, str] | None = None,
        timeout: float | None = None,
        check: bool = True,
    ) -> CommandResult:
        """Run a command and wait for it.

        Args:
            argv: Command and arguments
            cwd: Working directory for the child process
            env: Extra environment variables for this call
            timeout: Override of the default timeout
            check: Raise CommandError on a non-zero exit status

        Returns:
            CommandResult with captured stdout and stderr

        Raises:
            ToolNotFoundError: If the executable does not exist
            CommandTimeoutError: If the command exceeds its timeout
            CommandError: If check is set and the command fails
        """
        limit = timeout or self.timeout
        child_env = {**os.environ, **self.env, **(env or {})}
        logger.debug(f"Running {' '.join(argv)} (timeout {limit}s)")

        started = time.monotonic()
        try:
            proc = subprocess.run(
                argv,
                cwd=str(cwd) if cwd else None,
                env=child_env,
                capture_output=True,
                text=True,
                timeout=limit,
                check=False,
            )
        except FileNotFoundError as e:
            logger.error(f"Executable not found: {argv[0]}")
            raise ToolNotFoundError(argv) from e
        except subprocess.TimeoutExpired as e:
            logger.error(f"Command timed out after {limit}s: {' '.join(argv)}")
            raise CommandTimeoutError(argv, limit) from e

        result = CommandResult(
            argv=list(argv),
            returncode=proc.returncode,
            stdout=proc.stdout or "",
            stderr=proc.stderr or "",
            duration=time.monotonic() - started,
        )

        if check and not result.ok:
            logger.error(
                f"Command failed with status {result.returncode}: {' '.join(argv)}"
            )
            raise CommandError(argv, result.returncode, result.output_tail())

        return result
