"""Process handle with isolated signalling and a once-only terminal wait.

This module provides:
- ProcessSpec: a caller-assembled, not-yet-started program descriptor
- ProcessHandle: one OS process started from a ProcessSpec

Key design points:
- POSIX: start_new_session=True, so signals reach the whole process group
- Windows: CREATE_NEW_PROCESS_GROUP, CTRL_BREAK_EVENT as the interrupt
- Signalling a process that already exited is a no-op, not an error
- wait() reaps the process exactly once; concurrent callers share the result
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import subprocess
import sys
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Any

import anyio

from .errors import NotStartedError, StartError, TerminationError

__all__ = [
    "IS_WINDOWS",
    "ProcessHandle",
    "ProcessSpec",
]

logger = logging.getLogger(__name__)

IS_WINDOWS = sys.platform == "win32"

# Anything asyncio.create_subprocess_exec accepts for stdin/stdout/stderr.
StdStream = int | IO[Any] | None


@dataclass(frozen=True)
class ProcessSpec:
    """Specification for a program to run.

    Attributes:
        argv: Command line arguments (first element is the executable)
        cwd: Working directory for the process (None = inherit)
        env: Environment variables (None = inherit parent)
        stdin: Standard input (default DEVNULL, never the parent's stdin)
        stdout: Standard output (None = inherit)
        stderr: Standard error (None = inherit)
    """

    argv: list[str]
    cwd: Path | None = None
    env: Mapping[str, str] | None = None
    stdin: StdStream = subprocess.DEVNULL
    stdout: StdStream = None
    stderr: StdStream = None


class ProcessHandle:
    """One OS process instance.

    The handle is created before the process exists and moves from
    not-started to running to finished. ``finished`` only becomes true
    through ``wait()``, which records the terminal status.

    Example:
        handle = ProcessHandle(ProcessSpec(argv=["sleep", "10"]))
        await handle.start()
        handle.terminate()
        returncode = await handle.wait()
    """

    def __init__(self, spec: ProcessSpec) -> None:
        self.spec = spec
        self._process: asyncio.subprocess.Process | None = None
        self._returncode: int | None = None
        self._reaping: anyio.Event | None = None

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process is not None else None

    @property
    def started(self) -> bool:
        return self._process is not None

    @property
    def finished(self) -> bool:
        """True once wait() has recorded the terminal status."""
        return self._returncode is not None

    @property
    def returncode(self) -> int | None:
        return self._returncode

    @property
    def exited(self) -> bool:
        """True if the OS reports the process gone, reaped by us or not."""
        return self._process is not None and self._process.returncode is not None

    async def start(self) -> None:
        """Launch the program.

        Raises:
            StartError: If already started or the OS cannot launch it
        """
        if self._process is not None:
            raise StartError(self.spec.argv, "process already started")
        if not self.spec.argv:
            raise StartError(self.spec.argv, "empty argv")

        try:
            self._process = await asyncio.create_subprocess_exec(
                *self.spec.argv,
                stdin=self.spec.stdin,
                stdout=self.spec.stdout,
                stderr=self.spec.stderr,
                cwd=self.spec.cwd,
                **self._build_subprocess_kwargs(),
            )
        except OSError as e:
            raise StartError(
                self.spec.argv, f"cannot start {self.spec.argv[0]!r}: {e}"
            ) from e

        logger.debug(f"Started subprocess pid={self.pid} argv={self.spec.argv[0]}")

    def _build_subprocess_kwargs(self) -> dict[str, Any]:
        kwargs: dict[str, Any] = {}

        if self.spec.env is not None:
            kwargs["env"] = dict(self.spec.env)

        if IS_WINDOWS:
            kwargs["creationflags"] = subprocess.CREATE_NEW_PROCESS_GROUP
        else:
            kwargs["start_new_session"] = True

        return kwargs

    def interrupt(self) -> None:
        """Best-effort SIGINT (CTRL_BREAK_EVENT on Windows)."""
        if IS_WINDOWS:
            self._send_windows(signal.CTRL_BREAK_EVENT)
        else:
            self._send_group(signal.SIGINT)

    def terminate(self) -> None:
        """Best-effort SIGTERM (TerminateProcess on Windows)."""
        if IS_WINDOWS:
            if self._process is not None and not self.exited:
                try:
                    self._process.terminate()
                except ProcessLookupError:
                    pass
        else:
            self._send_group(signal.SIGTERM)

    def kill(self) -> None:
        """Force-kill the process (and its group on POSIX).

        A process that already exited is left alone. Any other delivery
        failure is surfaced.

        Raises:
            TerminationError: If the kill could not be delivered
        """
        process = self._process
        if process is None or process.returncode is not None:
            return

        try:
            if IS_WINDOWS:
                process.kill()
            else:
                # pgid equals pid because of start_new_session
                os.killpg(process.pid, signal.SIGKILL)
            logger.debug(f"Sent SIGKILL to pid={process.pid}")
        except ProcessLookupError:
            logger.debug(f"Subprocess already exited pid={process.pid}")
        except OSError as e:
            raise TerminationError(
                process.pid, f"failed to kill pid={process.pid}: {e}"
            ) from e

    def _send_group(self, signum: signal.Signals) -> None:
        process = self._process
        if process is None or process.returncode is not None:
            return

        try:
            # pgid equals pid because of start_new_session
            os.killpg(process.pid, signum)
            logger.debug(f"Sent {signum.name} to process group pgid={process.pid}")
        except ProcessLookupError:
            pass
        except OSError as e:
            logger.debug(f"killpg failed, falling back to send_signal: {e}")
            try:
                process.send_signal(signum)
            except ProcessLookupError:
                pass

    def _send_windows(self, signum: int) -> None:
        process = self._process
        if process is None or process.returncode is not None:
            return

        try:
            os.kill(process.pid, signum)
        except (ProcessLookupError, OSError) as e:
            logger.debug(f"Signal {signum} to pid={process.pid} failed: {e}")

    async def wait(self) -> int:
        """Wait for the process to exit and return its return code.

        The underlying wait runs at most once. Concurrent and later callers
        receive the recorded status. If the caller doing the wait is
        cancelled, another waiter takes over.

        Raises:
            NotStartedError: If start() never succeeded
        """
        process = self._process
        if process is None:
            raise NotStartedError()

        while self._returncode is None:
            if self._reaping is not None:
                await self._reaping.wait()
                continue

            self._reaping = anyio.Event()
            try:
                self._returncode = await process.wait()
                logger.debug(
                    f"Subprocess completed pid={process.pid} "
                    f"returncode={self._returncode}"
                )
            finally:
                reaping, self._reaping = self._reaping, None
                reaping.set()

        return self._returncode

    def __repr__(self) -> str:
        if self._process is None:
            status = "not-started"
        elif self._returncode is None:
            status = "running"
        else:
            status = f"finished({self._returncode})"
        return f"ProcessHandle(argv={self.spec.argv!r}, pid={self.pid}, status={status})"
