"""Supervised run: one process under one cancel signal.

``Cmd`` wraps a ProcessHandle with a terminator and exposes the
start / run / wait / stop lifecycle. ``wait`` blocks on the cancel signal
only; the process finishing early is not observed until the signal fires.
Bounded-lifetime and explicitly cancelled executions are the intended use.

State machine::

    NOT_STARTED --start()--> RUNNING --signal fires--> TERMINATING --> FINISHED
    NOT_STARTED --start() fails--> FAILED_START
"""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence
from enum import Enum

from .cancellation import CancelSignal
from .errors import CtxExecError, ExitStatusError, NotStartedError, StartError, TerminationError
from .outcome import RunOutcome
from .process import ProcessHandle, ProcessSpec
from .terminator import Terminator, stop_process

__all__ = ["Cmd", "RunState", "run", "stop", "supervise"]

logger = logging.getLogger(__name__)


class RunState(Enum):
    """Lifecycle state of a supervised run."""

    NOT_STARTED = "not_started"
    RUNNING = "running"
    TERMINATING = "terminating"
    FINISHED = "finished"
    FAILED_START = "failed_start"


class Cmd:
    """Cancel-aware wrapper around a ProcessHandle.

    The terminator is fixed at construction. Errors are raised, never
    logged or retried here.

    Example:
        ```python
        cmd = Cmd(ProcessHandle(ProcessSpec(argv=["sleep", "60"])))
        try:
            await cmd.run(CancelSignal.with_timeout(2.0))
        except DeadlineExceeded:
            ...
        assert cmd.finished
        ```

    Attributes:
        handle: The process being supervised
        terminator: Strategy used by stop() and wait()
    """

    def __init__(
        self,
        handle: ProcessHandle,
        terminator: Terminator | None = None,
    ) -> None:
        self.handle = handle
        self.terminator: Terminator = terminator if terminator is not None else stop_process
        self._start_failed = False
        self._terminating = False

    @property
    def finished(self) -> bool:
        """True once the process has a recorded terminal status."""
        return self.handle.finished

    @property
    def state(self) -> RunState:
        if self._start_failed:
            return RunState.FAILED_START
        if not self.handle.started:
            return RunState.NOT_STARTED
        if self.handle.finished:
            return RunState.FINISHED
        if self._terminating:
            return RunState.TERMINATING
        return RunState.RUNNING

    async def start(self) -> None:
        """Start the process without waiting for it.

        Raises:
            StartError: If the program cannot be launched
        """
        try:
            await self.handle.start()
        except StartError:
            if not self.handle.started:
                self._start_failed = True
            raise

    async def run(self, signal: CancelSignal) -> None:
        """Start the process, then wait(signal)."""
        await self.start()
        await self.wait(signal)

    async def stop(self, signal: CancelSignal) -> None:
        """Run the terminator now, without waiting for the signal.

        A never-started process is left alone.
        """
        if not self.handle.started:
            logger.debug("stop() on a process that was never started")
            return
        await self.terminator(self.handle, signal)

    async def wait(self, signal: CancelSignal) -> None:
        """Wait for the signal, then terminate and reap the process.

        Returns normally only if the terminator succeeded, the process
        exited with status 0 and the signal carries no reason.

        Raises (first applicable wins):
            TerminationError / terminator error: From the terminator
            ExitStatusError: The process exited with a non-zero status
            CancellationError: The signal's reason
            NotStartedError: If the process was never started
        """
        if not self.handle.started:
            raise NotStartedError()

        await signal.wait()
        logger.debug(f"Signal fired, stopping pid={self.handle.pid}: {signal.reason}")

        self._terminating = True
        stop_error: Exception | None = None
        try:
            await self.stop(signal)
        except TerminationError:
            # The process may still be alive; reaping it could block forever.
            raise
        except Exception as e:
            stop_error = e

        returncode = await self.handle.wait()

        if stop_error is not None:
            raise stop_error
        if returncode != 0:
            raise ExitStatusError(returncode)
        signal.check()

    def __repr__(self) -> str:
        return f"Cmd(handle={self.handle!r}, state={self.state.value})"


def _as_handle(target: ProcessHandle | ProcessSpec | Sequence[str]) -> ProcessHandle:
    if isinstance(target, ProcessHandle):
        return target
    if isinstance(target, ProcessSpec):
        return ProcessHandle(target)
    return ProcessHandle(ProcessSpec(argv=list(target)))


async def run(
    signal: CancelSignal,
    target: ProcessHandle | ProcessSpec | Sequence[str],
    terminator: Terminator | None = None,
) -> None:
    """Start ``target`` and supervise it until ``signal`` fires.

    ``target`` may be a handle, a spec or a plain argv list.
    """
    await Cmd(_as_handle(target), terminator).run(signal)


async def stop(
    signal: CancelSignal,
    handle: ProcessHandle,
    terminator: Terminator | None = None,
) -> None:
    """Terminate an already started process with a throwaway Cmd."""
    await Cmd(handle, terminator).stop(signal)


async def supervise(
    signal: CancelSignal,
    target: ProcessHandle | ProcessSpec | Sequence[str],
    terminator: Terminator | None = None,
) -> RunOutcome:
    """Run ``target`` and classify the result instead of raising it."""
    handle = _as_handle(target)
    started_at = time.monotonic()
    error: Exception | None = None

    try:
        await Cmd(handle, terminator).run(signal)
    except CtxExecError as e:
        error = e
    except Exception as e:
        # A custom reason handed to CancelSignal.cancel()
        if e is not signal.reason:
            raise
        error = e

    return RunOutcome.from_error(
        error,
        argv=handle.spec.argv,
        returncode=handle.returncode,
        elapsed=time.monotonic() - started_at,
    )
