"""Run outcome model.

A RunOutcome classifies the single result of a supervised run so that it
can be reported, serialized, or mapped to a process exit code.
"""

from __future__ import annotations

import signal
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from .errors import (
    CancellationError,
    DeadlineExceeded,
    ExitStatusError,
    NotStartedError,
    StartError,
    TerminationError,
)

__all__ = ["OutcomeKind", "RunOutcome"]

EXIT_TERMINATION_FAILED = 1
EXIT_DEADLINE_EXCEEDED = 124
EXIT_START_FAILED = 127
EXIT_CANCELLED = 128 + signal.SIGINT


class OutcomeKind(str, Enum):
    SUCCESS = "success"
    EXIT_STATUS = "exit_status"
    CANCELLED = "cancelled"
    DEADLINE_EXCEEDED = "deadline_exceeded"
    START_ERROR = "start_error"
    TERMINATION_ERROR = "termination_error"


class RunOutcome(BaseModel):
    """Classified result of one supervised run.

    Attributes:
        kind: Outcome category
        argv: Command line that was run
        returncode: Raw return code if the process was reaped
        error: Error message, None on success
        elapsed: Wall time of the run in seconds
    """

    model_config = ConfigDict(frozen=True)

    kind: OutcomeKind
    argv: list[str] = Field(default_factory=list)
    returncode: int | None = None
    error: str | None = None
    elapsed: float = 0.0

    @property
    def ok(self) -> bool:
        return self.kind is OutcomeKind.SUCCESS

    @classmethod
    def from_error(
        cls,
        error: Exception | None,
        *,
        argv: list[str] | None = None,
        returncode: int | None = None,
        elapsed: float = 0.0,
    ) -> RunOutcome:
        """Classify ``error`` (None meaning success)."""
        if returncode is None and isinstance(error, ExitStatusError):
            returncode = error.returncode
        return cls(
            kind=_classify(error),
            argv=list(argv or []),
            returncode=returncode,
            error=str(error) if error is not None else None,
            elapsed=elapsed,
        )

    @property
    def exit_code(self) -> int:
        """Shell-style exit code for this outcome.

        Follows timeout(1) and the shell: 124 on deadline, 127 when the
        program could not be started, 128+N for death by signal N.
        """
        if self.kind is OutcomeKind.SUCCESS:
            return 0
        if self.kind is OutcomeKind.DEADLINE_EXCEEDED:
            return EXIT_DEADLINE_EXCEEDED
        if self.kind is OutcomeKind.CANCELLED:
            return EXIT_CANCELLED
        if self.kind is OutcomeKind.START_ERROR:
            return EXIT_START_FAILED
        if self.kind is OutcomeKind.EXIT_STATUS and self.returncode is not None:
            if self.returncode < 0:
                return 128 - self.returncode
            return self.returncode
        return EXIT_TERMINATION_FAILED


def _classify(error: Exception | None) -> OutcomeKind:
    if error is None:
        return OutcomeKind.SUCCESS
    if isinstance(error, DeadlineExceeded):
        return OutcomeKind.DEADLINE_EXCEEDED
    if isinstance(error, CancellationError):
        return OutcomeKind.CANCELLED
    if isinstance(error, ExitStatusError):
        return OutcomeKind.EXIT_STATUS
    if isinstance(error, (StartError, NotStartedError)):
        return OutcomeKind.START_ERROR
    if isinstance(error, TerminationError):
        return OutcomeKind.TERMINATION_ERROR
    # Custom cancel reasons passed to CancelSignal.cancel()
    return OutcomeKind.CANCELLED
