"""Subprocess execution for the external CLIs stackctl drives."""

import os
import shutil
import subprocess
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

import structlog

from .config import Settings
from .errors import CommandError, PrerequisiteError, WaitTimeoutError

logger = structlog.get_logger()


@dataclass
class CommandResult:
    """Outcome of a finished command."""

    args: list[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def require_tools(*names: str) -> None:
    """Fail fast when any of the named binaries is not on PATH."""
    missing = [name for name in names if shutil.which(name) is None]
    if missing:
        raise PrerequisiteError(f"Required tools not found on PATH: {', '.join(missing)}")


class CommandRunner:
    """Runs external commands with captured output."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    def _env(self, extra: Mapping[str, str] | None) -> dict[str, str]:
        env = dict(os.environ)
        if self.settings.kubeconfig:
            env["KUBECONFIG"] = str(self.settings.kubeconfig)
        if extra:
            env.update(extra)
        return env

    def run(
        self,
        args: Sequence[str],
        check: bool = True,
        timeout: int | None = None,
        input: str | None = None,
        env: Mapping[str, str] | None = None,
    ) -> CommandResult:
        """Run a command to completion.

        Args:
            args: Command and arguments
            check: Raise CommandError on a non-zero exit
            timeout: Seconds before the command is killed
            input: Text passed on stdin
            env: Extra environment variables

        Returns:
            CommandResult with captured stdout/stderr

        Raises:
            CommandError: If check is set and the command fails
            WaitTimeoutError: If the command exceeds its timeout
        """
        argv = [str(a) for a in args]
        limit = timeout or self.settings.command_timeout_seconds
        logger.debug("Running command", command=" ".join(argv))
        try:
            proc = subprocess.run(
                argv,
                capture_output=True,
                text=True,
                timeout=limit,
                input=input,
                env=self._env(env),
            )
        except subprocess.TimeoutExpired as e:
            raise WaitTimeoutError(f"{' '.join(argv)} timed out after {limit}s") from e
        except FileNotFoundError as e:
            raise PrerequisiteError(f"{argv[0]} is not installed") from e

        result = CommandResult(
            args=argv, returncode=proc.returncode, stdout=proc.stdout or "", stderr=proc.stderr or ""
        )
        if check and not result.ok:
            logger.error("Command failed", command=" ".join(argv), returncode=proc.returncode)
            raise CommandError(argv, proc.returncode, result.stderr)
        return result
