"""Exception hierarchy for stackctl."""

from collections.abc import Sequence


class StackError(Exception):
    """Base class for all stackctl failures."""


class PrerequisiteError(StackError):
    """A tool, the cluster, or a dependency resource is missing."""


class CommandError(StackError):
    """An external command exited non-zero."""

    def __init__(self, args: Sequence[str], returncode: int, stderr: str = "") -> None:
        self.command = list(args)
        self.returncode = returncode
        self.stderr = stderr.strip()
        message = f"{' '.join(self.command)} exited with {returncode}"
        if self.stderr:
            message = f"{message}: {self.stderr}"
        super().__init__(message)


class WaitTimeoutError(StackError):
    """A bounded wait expired before the condition was met."""


class ComponentError(StackError):
    """A component step failed."""

    def __init__(self, component: str, step: str, cause: Exception) -> None:
        self.component = component
        self.step = step
        self.cause = cause
        super().__init__(f"{component}: {step} failed: {cause}")
