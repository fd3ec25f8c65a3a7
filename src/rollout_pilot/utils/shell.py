"""Command execution transport for helm, kubectl and the aws CLI."""

import os
import shlex
import subprocess
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from rollout_pilot.utils.errors import ExternalCommandError
from rollout_pilot.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class CommandResult:
    """Captured output of a finished command."""
    command: List[str]
    stdout: str
    stderr: str
    exit_code: int

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    @property
    def command_line(self) -> str:
        return shlex.join(self.command)


class CommandRunner:
    """Runs commands as argument lists, never through a shell."""

    def __init__(self, env: Optional[Dict[str, str]] = None, timeout: Optional[float] = None):
        """Initialize command runner.

        Args:
            env: Extra environment variables layered over the process environment
            timeout: Hard limit in seconds for a single command, None for no limit
        """
        self.env = dict(env or {})
        self.timeout = timeout

    def with_env(self, **extra: str) -> 'CommandRunner':
        """Return a runner with additional environment variables."""
        return CommandRunner(env={**self.env, **extra}, timeout=self.timeout)

    def run(self, command: Sequence[str], quiet: bool = False) -> CommandResult:
        """Run a command and capture its output.

        A missing executable is reported as exit code 127 rather than raised.

        Args:
            command: Program and arguments
            quiet: Skip the DEBUG echo of the command line

        Returns:
            CommandResult with stdout, stderr and exit code
        """
        argv = [str(part) for part in command]
        if not quiet:
            logger.debug(f"[sh] {shlex.join(argv)}")

        try:
            completed = subprocess.run(
                argv,
                capture_output=True,
                text=True,
                env={**os.environ, **self.env},
                timeout=self.timeout
            )
        except FileNotFoundError as e:
            return CommandResult(command=argv, stdout='', stderr=str(e), exit_code=127)
        except subprocess.TimeoutExpired as e:
            stdout = e.stdout if isinstance(e.stdout, str) else ''
            return CommandResult(command=argv, stdout=stdout, stderr=f"timed out after {self.timeout}s", exit_code=124)

        return CommandResult(
            command=argv,
            stdout=completed.stdout.strip(),
            stderr=completed.stderr.strip(),
            exit_code=completed.returncode
        )

    def run_or_fail(self, command: Sequence[str], error_message: str = 'Command failed') -> CommandResult:
        """Run a command and raise if it exits non-zero.

        Args:
            command: Program and arguments
            error_message: Prefix for the raised error

        Returns:
            CommandResult of the successful run

        Raises:
            ExternalCommandError: With the exit code and command line attached
        """
        result = self.run(command)
        if not result.ok:
            if result.stderr:
                logger.error(result.stderr)
            raise ExternalCommandError(
                error_message,
                command=result.command_line,
                exit_code=result.exit_code,
                stderr=result.stderr
            )
        return result
