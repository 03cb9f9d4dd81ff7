"""Exception hierarchy for ctxexec.

Every error a supervised run can end with derives from ``CtxExecError``:

- StartError: the program could not be launched
- NotStartedError: an operation needs a started process
- ExitStatusError: the process exited with a non-zero status
- TerminationError: the process could not be killed
- CancellationError: the governing signal fired (Cancelled / DeadlineExceeded)
"""

from __future__ import annotations

import signal

__all__ = [
    "CtxExecError",
    "StartError",
    "NotStartedError",
    "ExitStatusError",
    "TerminationError",
    "CancellationError",
    "Cancelled",
    "DeadlineExceeded",
]


class CtxExecError(Exception):
    """Base exception for ctxexec."""
    pass


class StartError(CtxExecError):
    """The OS could not launch the program.

    Attributes:
        argv: Command line that failed to start
    """

    def __init__(self, argv: list[str], message: str) -> None:
        self.argv = list(argv)
        super().__init__(message)


class NotStartedError(CtxExecError):
    """Raised when waiting on a process that was never started."""

    def __init__(self, message: str = "process not started") -> None:
        super().__init__(message)


class ExitStatusError(CtxExecError):
    """The process ran and exited with a non-zero status.

    Attributes:
        returncode: Raw return code (negative when killed by a signal)
    """

    def __init__(self, returncode: int) -> None:
        self.returncode = returncode
        super().__init__(describe_returncode(returncode))

    @property
    def signum(self) -> signal.Signals | None:
        """Signal that terminated the process, if any."""
        if self.returncode >= 0:
            return None
        try:
            return signal.Signals(-self.returncode)
        except ValueError:
            return None


class TerminationError(CtxExecError):
    """A forced kill could not be delivered."""

    def __init__(self, pid: int | None, message: str) -> None:
        self.pid = pid
        super().__init__(message)


class CancellationError(CtxExecError):
    """Base for the reasons a cancel signal fires."""
    pass


class Cancelled(CancellationError):
    """The signal was cancelled explicitly."""

    def __init__(self, message: str = "signal cancelled") -> None:
        super().__init__(message)


class DeadlineExceeded(CancellationError, TimeoutError):
    """The signal's deadline elapsed."""

    def __init__(self, message: str = "deadline exceeded") -> None:
        super().__init__(message)


def describe_returncode(returncode: int) -> str:
    """Render a return code the way a shell user reads it."""
    if returncode < 0:
        try:
            return f"signal: {signal.Signals(-returncode).name}"
        except ValueError:
            return f"signal: {-returncode}"
    return f"exit status {returncode}"
