"""One-shot cancellation signals.

A ``CancelSignal`` fires at most once and carries the reason it fired as an
exception instance (``Cancelled`` or ``DeadlineExceeded``). Once fired it
never resets. The state is observable without blocking (``done``,
``reason``) and awaitable (``wait()``).

Signals form a tree: a child created with ``parent=`` fires as soon as its
parent does and inherits the parent's reason. This is how callers build a
"ask nicely, then hard kill" policy out of two nested deadlines.

Example:
    ```python
    signal = CancelSignal.with_timeout(2.0)
    await signal.wait()
    assert isinstance(signal.reason, DeadlineExceeded)
    ```
"""

from __future__ import annotations

import logging
import math
import time

import anyio

from .errors import Cancelled, DeadlineExceeded

__all__ = ["CancelSignal"]

logger = logging.getLogger(__name__)


class CancelSignal:
    """Broadcast, reason-carrying, fire-once notification.

    Deadlines are absolute ``time.monotonic()`` values. Expiry is detected
    lazily: reading ``done``/``reason`` after the deadline fires the signal
    with ``DeadlineExceeded`` even if nobody is awaiting it.

    Attributes:
        deadline: Effective deadline (the earlier of this signal's and its
            ancestors'), or None when the signal has no deadline
    """

    def __init__(
        self,
        *,
        deadline: float | None = None,
        parent: CancelSignal | None = None,
    ) -> None:
        self._deadline = deadline
        self._parent = parent
        self._reason: Exception | None = None
        self._event: anyio.Event | None = None

    @classmethod
    def background(cls) -> CancelSignal:
        """A root signal with no deadline; fires only if cancelled."""
        return cls()

    @classmethod
    def with_cancel(cls, parent: CancelSignal | None = None) -> CancelSignal:
        """A signal that fires on ``cancel()`` or when ``parent`` fires."""
        return cls(parent=parent)

    @classmethod
    def with_deadline(
        cls,
        when: float,
        parent: CancelSignal | None = None,
    ) -> CancelSignal:
        """A signal that fires at monotonic time ``when``."""
        return cls(deadline=when, parent=parent)

    @classmethod
    def with_timeout(
        cls,
        seconds: float,
        parent: CancelSignal | None = None,
    ) -> CancelSignal:
        """A signal that fires ``seconds`` from now.

        A zero or negative timeout yields a signal that is already done.
        """
        return cls.with_deadline(time.monotonic() + seconds, parent=parent)

    @property
    def deadline(self) -> float | None:
        deadlines = [
            d
            for d in (self._deadline, self._parent.deadline if self._parent else None)
            if d is not None
        ]
        return min(deadlines) if deadlines else None

    @property
    def reason(self) -> Exception | None:
        """Why the signal fired, or None while it is pending."""
        if self._reason is None:
            if self._parent is not None and self._parent.reason is not None:
                self._fire(self._parent.reason)
            elif self._deadline is not None and time.monotonic() >= self._deadline:
                self._fire(DeadlineExceeded())
        return self._reason

    @property
    def done(self) -> bool:
        return self.reason is not None

    def cancel(self, reason: Exception | None = None) -> None:
        """Fire the signal. Later calls are ignored."""
        self._fire(reason if reason is not None else Cancelled())

    def check(self) -> None:
        """Raise the reason if the signal has fired."""
        reason = self.reason
        if reason is not None:
            # Same instance every time; drop frames left by earlier raises
            raise reason.with_traceback(None)

    async def wait(self) -> None:
        """Suspend until the signal fires."""
        if self.done:
            return
        if self._event is None:
            self._event = anyio.Event()

        async with anyio.create_task_group() as tg:
            tg.start_soon(self._wait_own, tg.cancel_scope)
            if self._parent is not None:
                tg.start_soon(self._wait_parent, tg.cancel_scope)

    async def _wait_own(self, group_scope: anyio.CancelScope) -> None:
        event = self._event
        assert event is not None
        timeout = math.inf
        if self._deadline is not None:
            timeout = max(0.0, self._deadline - time.monotonic())

        with anyio.move_on_after(timeout) as scope:
            await event.wait()
        # The event loop clock may wake a hair before time.monotonic()
        # crosses the deadline, so expiry is decided by the scope.
        if scope.cancelled_caught:
            self._fire(DeadlineExceeded())
        group_scope.cancel()

    async def _wait_parent(self, group_scope: anyio.CancelScope) -> None:
        assert self._parent is not None
        await self._parent.wait()
        reason = self._parent.reason
        if reason is not None:
            self._fire(reason)
        group_scope.cancel()

    def _fire(self, reason: Exception) -> None:
        if self._reason is not None:
            return
        self._reason = reason
        logger.debug(f"Cancel signal fired: {type(reason).__name__}: {reason}")
        if self._event is not None:
            self._event.set()

    def __repr__(self) -> str:
        state = "pending" if self._reason is None else type(self._reason).__name__
        return f"CancelSignal(state={state}, deadline={self._deadline})"
