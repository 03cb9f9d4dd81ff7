"""ctxexec - run external programs under a cancel signal.

Start a child process, wait for the governing cancel signal to fire, then
interrupt, terminate and if needed kill it, returning one definitive error.

Usage:
    await ctxexec.run(CancelSignal.with_timeout(5), ["sleep", "60"])
"""

__version__ = "0.1.0"

from .cancellation import CancelSignal
from .cmd import Cmd, RunState, run, stop, supervise
from .errors import (
    Cancelled,
    CancellationError,
    CtxExecError,
    DeadlineExceeded,
    ExitStatusError,
    NotStartedError,
    StartError,
    TerminationError,
)
from .outcome import OutcomeKind, RunOutcome
from .process import ProcessHandle, ProcessSpec
from .terminator import GracefulTerminator, Terminator, stop_process

__all__ = [
    "__version__",
    "CancelSignal",
    "Cancelled",
    "CancellationError",
    "Cmd",
    "CtxExecError",
    "DeadlineExceeded",
    "ExitStatusError",
    "GracefulTerminator",
    "NotStartedError",
    "OutcomeKind",
    "ProcessHandle",
    "ProcessSpec",
    "RunOutcome",
    "RunState",
    "StartError",
    "TerminationError",
    "Terminator",
    "run",
    "stop",
    "stop_process",
    "supervise",
]
