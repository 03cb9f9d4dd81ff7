"""Terminator strategy tests.

Test coverage:
- stop_process decision table with a deterministic fake handle
- GracefulTerminator grace period and escalation
- Real processes: graceful exit, repeated stop on a finished process
"""

from __future__ import annotations

import time
from pathlib import Path

import anyio
import pytest

from ctxexec.cancellation import CancelSignal
from ctxexec.errors import (
    Cancelled,
    DeadlineExceeded,
    ExitStatusError,
    TerminationError,
)
from ctxexec.process import ProcessHandle, ProcessSpec
from ctxexec.terminator import GracefulTerminator, stop_process


class FakeHandle:
    """In-memory stand-in for ProcessHandle.

    Records every call. ``exit_on`` names the calls that make the fake
    process exit; otherwise wait() blocks until kill().
    """

    def __init__(
        self,
        *,
        returncode: int = 0,
        exit_on: tuple[str, ...] = ("terminate",),
        started: bool = True,
        kill_error: Exception | None = None,
    ) -> None:
        self.calls: list[str] = []
        self.started = started
        self.pid = 4242 if started else None
        self._exit_returncode = returncode
        self._exit_on = exit_on
        self._kill_error = kill_error
        self._exited: anyio.Event | None = None
        self.returncode: int | None = None
        self.wait_calls = 0

    @property
    def finished(self) -> bool:
        return self.returncode is not None

    def _event(self) -> anyio.Event:
        if self._exited is None:
            self._exited = anyio.Event()
        return self._exited

    def _exit(self, returncode: int) -> None:
        if self.returncode is None:
            self.returncode = returncode
        self._event().set()

    def interrupt(self) -> None:
        self.calls.append("interrupt")
        if "interrupt" in self._exit_on:
            self._exit(self._exit_returncode)

    def terminate(self) -> None:
        self.calls.append("terminate")
        if "terminate" in self._exit_on:
            self._exit(self._exit_returncode)

    def kill(self) -> None:
        self.calls.append("kill")
        if self._kill_error is not None:
            raise self._kill_error
        self._exit(-9)

    async def wait(self) -> int:
        self.wait_calls += 1
        await self._event().wait()
        assert self.returncode is not None
        return self.returncode


class TestStopProcess:
    """Default strategy decision table."""

    @pytest.mark.asyncio
    async def test_fired_signal_kills_and_raises_reason(self):
        handle = FakeHandle(exit_on=())
        signal = CancelSignal.with_timeout(0)

        with pytest.raises(DeadlineExceeded) as exc_info:
            await stop_process(handle, signal)

        assert exc_info.value is signal.reason
        assert handle.calls == ["interrupt", "terminate", "kill"]
        assert handle.wait_calls == 0

    @pytest.mark.asyncio
    async def test_explicit_cancel_reason_is_preserved(self):
        handle = FakeHandle(exit_on=())
        signal = CancelSignal.with_cancel()
        signal.cancel()

        with pytest.raises(Cancelled):
            await stop_process(handle, signal)

    @pytest.mark.asyncio
    @pytest.mark.timeout(5)
    async def test_pending_signal_waits_for_natural_exit(self):
        handle = FakeHandle(returncode=0)

        await stop_process(handle, CancelSignal.background())

        assert handle.calls == ["interrupt", "terminate"]
        assert handle.wait_calls == 1

    @pytest.mark.asyncio
    @pytest.mark.timeout(5)
    async def test_pending_signal_nonzero_exit(self):
        handle = FakeHandle(returncode=3)

        with pytest.raises(ExitStatusError) as exc_info:
            await stop_process(handle, CancelSignal.background())

        assert exc_info.value.returncode == 3
        assert str(exc_info.value) == "exit status 3"

    @pytest.mark.asyncio
    async def test_unstarted_handle_is_left_alone(self):
        handle = FakeHandle(started=False)
        await stop_process(handle, CancelSignal.with_timeout(0))
        assert handle.calls == []

    @pytest.mark.asyncio
    async def test_kill_failure_is_surfaced(self):
        handle = FakeHandle(exit_on=(), kill_error=TerminationError(4242, "denied"))

        with pytest.raises(TerminationError):
            await stop_process(handle, CancelSignal.with_timeout(0))


class TestGracefulTerminator:
    """Grace period then kill."""

    @pytest.mark.asyncio
    @pytest.mark.timeout(5)
    async def test_exits_within_grace(self):
        handle = FakeHandle(returncode=0, exit_on=("terminate",))
        terminator = GracefulTerminator(term_timeout=1.0, kill_timeout=0.5)
        signal = CancelSignal.with_timeout(0)

        with pytest.raises(DeadlineExceeded):
            await terminator(handle, signal)

        assert "kill" not in handle.calls
        assert handle.returncode == 0

    @pytest.mark.asyncio
    @pytest.mark.timeout(5)
    async def test_escalates_to_kill(self):
        handle = FakeHandle(exit_on=())
        terminator = GracefulTerminator(term_timeout=0.1, kill_timeout=0.5)
        signal = CancelSignal.with_timeout(0)
        start = time.monotonic()

        with pytest.raises(DeadlineExceeded):
            await terminator(handle, signal)

        assert time.monotonic() - start >= 0.09
        assert handle.calls == ["interrupt", "terminate", "kill"]
        assert handle.returncode == -9

    @pytest.mark.asyncio
    @pytest.mark.timeout(5)
    async def test_pending_signal_behaves_like_default(self):
        handle = FakeHandle(returncode=2)
        terminator = GracefulTerminator()

        with pytest.raises(ExitStatusError):
            await terminator(handle, CancelSignal.background())

        assert "kill" not in handle.calls

    @pytest.mark.asyncio
    @pytest.mark.timeout(10)
    async def test_real_process_ignoring_signals(self, fake_cli, tmp_path: Path, wait_for_file):
        ready = tmp_path / "ready"
        handle = ProcessHandle(
            ProcessSpec(argv=fake_cli(duration=30, on_signal="ignore", ready_file=ready))
        )
        await handle.start()
        await wait_for_file(ready)

        terminator = GracefulTerminator(term_timeout=0.2, kill_timeout=2.0)
        with pytest.raises(DeadlineExceeded):
            await terminator(handle, CancelSignal.with_timeout(0))

        assert handle.finished
        assert handle.returncode != 0


@pytest.mark.integration
class TestRealProcesses:
    """stop_process against real programs."""

    @pytest.mark.asyncio
    @pytest.mark.timeout(10)
    async def test_trapping_program_exits_cleanly(
        self, fake_cli, tmp_path: Path, wait_for_file
    ):
        ready = tmp_path / "ready"
        handle = ProcessHandle(
            ProcessSpec(argv=fake_cli(duration=30, on_signal="exit", ready_file=ready))
        )
        await handle.start()
        await wait_for_file(ready)

        await stop_process(handle, CancelSignal.background())

        assert handle.finished
        assert handle.returncode == 0

    @pytest.mark.asyncio
    @pytest.mark.timeout(10)
    async def test_double_stop_on_finished_process(self, fake_cli, tmp_path: Path, wait_for_file):
        ready = tmp_path / "ready"
        handle = ProcessHandle(
            ProcessSpec(argv=fake_cli(duration=30, on_signal="exit", ready_file=ready))
        )
        await handle.start()
        await wait_for_file(ready)

        signal = CancelSignal.background()
        await stop_process(handle, signal)
        with anyio.fail_after(2):
            await stop_process(handle, signal)

        assert handle.returncode == 0
