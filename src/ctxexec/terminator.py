"""Termination strategies.

A terminator receives a started ProcessHandle and the CancelSignal that
governs the run. It asks the process to stop and returns normally only when
the process ended cleanly on its own; every other outcome is raised.

- stop_process: the default. Interrupt, terminate, then decide at once:
  kill if the signal already fired, otherwise wait for a natural exit.
- GracefulTerminator: interrupt, terminate, give the process a grace
  period, then kill.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

import anyio

from .cancellation import CancelSignal
from .errors import ExitStatusError
from .process import ProcessHandle

__all__ = [
    "DEFAULT_KILL_TIMEOUT",
    "DEFAULT_TERM_TIMEOUT",
    "GracefulTerminator",
    "Terminator",
    "stop_process",
]

logger = logging.getLogger(__name__)

DEFAULT_TERM_TIMEOUT = 2.0  # seconds to wait after SIGTERM
DEFAULT_KILL_TIMEOUT = 1.0  # seconds to wait after SIGKILL

Terminator = Callable[[ProcessHandle, CancelSignal], Awaitable[None]]


def _request_stop(handle: ProcessHandle) -> None:
    handle.interrupt()
    handle.terminate()


async def _wait_exit(handle: ProcessHandle) -> None:
    returncode = await handle.wait()
    if returncode != 0:
        raise ExitStatusError(returncode)


async def stop_process(handle: ProcessHandle, signal: CancelSignal) -> None:
    """Default terminator.

    There is no grace period: whether the process is killed depends only on
    whether ``signal`` has fired at the moment of the call. Callers that
    want one nest a short "ask nicely" deadline inside a longer one.

    Raises:
        CancellationError: The signal's reason, after the process was killed
        ExitStatusError: The process exited on its own with a non-zero status
        TerminationError: The kill could not be delivered
    """
    if not handle.started:
        return

    _request_stop(handle)

    if signal.done:
        logger.debug(f"Signal already fired, killing pid={handle.pid}")
        handle.kill()
        signal.check()

    await _wait_exit(handle)


@dataclass(frozen=True)
class GracefulTerminator:
    """Terminator with a timed grace period.

    Termination strategy once the signal has fired:
    1. Send SIGINT and SIGTERM to the process group
    2. Wait up to term_timeout for the process to exit
    3. If still running, send SIGKILL
    4. Wait up to kill_timeout for the forced exit
    5. Raise the signal's reason

    Before the signal fires it behaves like stop_process.

    Attributes:
        term_timeout: Seconds to wait after the graceful request
        kill_timeout: Seconds to wait after the kill
    """

    term_timeout: float = DEFAULT_TERM_TIMEOUT
    kill_timeout: float = DEFAULT_KILL_TIMEOUT

    async def __call__(self, handle: ProcessHandle, signal: CancelSignal) -> None:
        if not handle.started:
            return

        _request_stop(handle)

        if not signal.done:
            await _wait_exit(handle)
            return

        pid = handle.pid
        with anyio.move_on_after(self.term_timeout):
            await handle.wait()
        if handle.finished:
            logger.debug(
                f"Subprocess terminated gracefully pid={pid} "
                f"returncode={handle.returncode}"
            )
            signal.check()

        logger.debug(f"Force killing subprocess pid={pid}")
        handle.kill()

        with anyio.move_on_after(self.kill_timeout):
            await handle.wait()
        if not handle.finished:
            logger.warning(f"Subprocess did not exit after kill pid={pid}")

        signal.check()
