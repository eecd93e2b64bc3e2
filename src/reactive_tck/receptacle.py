"""Signal receptacle: the consumer-facing side of a test Subscriber.

The producer side (``next`` / ``error`` / ``terminate``) is called from
Subscriber callbacks and never raises; contract violations observed there are
turned into fault signals so that the next ``expect_*`` call reports them.

Every ``expect_*`` call races one dequeue against a timer. When the timer
wins, the pending dequeue is detached without losing anything, so a signal
that arrives "too late" is still buffered for the next expectation.
"""

from __future__ import annotations

import asyncio
from typing import List, Optional, Type, TypeVar

from reactive_tck.models import (
    ExpectationError,
    InsufficientElementsError,
    ProtocolViolationError,
    Signal,
    SignalKind,
    SignalTimeoutError,
    UnknownSignalError,
    describe_error,
)
from reactive_tck.signal_queue import AsyncQueue, PendingPoll

T = TypeVar("T")
E = TypeVar("E", bound=BaseException)

DEFAULT_TIMEOUT_MS: float = 1000.0


class Receptacle(AsyncQueue[Signal[T]]):
    """Ordered capture of the value / fault / completion signals of one subscription."""

    def __init__(self) -> None:
        super().__init__()
        self._terminal = False
        self.terminal_error: Optional[BaseException] = None

    @property
    def terminal(self) -> bool:
        return self._terminal

    # ------------------------------------------------------------------
    # Producer side
    # ------------------------------------------------------------------

    def next(self, element: T) -> None:
        if self._terminal:
            self.violation(f"Emitted unexpected next [{element!r}] after terminal signal")
            return
        self.push(Signal.of_value(element))

    def error(self, error: BaseException) -> None:
        if self._terminal:
            self.violation(
                f"Emitted unexpected error [{describe_error(error)}] after terminal signal"
            )
            return
        self._terminal = True
        self.terminal_error = error
        self.push(Signal.of_fault(error))

    def terminate(self) -> None:
        if self._terminal:
            self.violation("Emitted termination more than once")
            return
        self._terminal = True
        self.push(Signal.of_complete())

    def violation(self, message: str) -> None:
        """Record a synthetic fault without touching the terminal state."""
        self.push(Signal.of_fault(ProtocolViolationError(message)))

    # ------------------------------------------------------------------
    # Consumer side
    # ------------------------------------------------------------------

    async def expect_next(
        self,
        message: str = "Expected next element",
        timeout_ms: float = DEFAULT_TIMEOUT_MS,
    ) -> T:
        signal = await self._next_signal(message, timeout_ms)
        if signal.kind is SignalKind.VALUE:
            return signal.value  # type: ignore[return-value]
        if signal.kind in (SignalKind.FAULT, SignalKind.COMPLETE):
            raise _unexpected(message, signal)
        raise UnknownSignalError(signal)

    async def expect_next_n(
        self,
        n: int,
        message: Optional[str] = None,
        timeout_ms: float = DEFAULT_TIMEOUT_MS,
    ) -> List[T]:
        """Collect exactly ``n`` values within one overall timeout.

        If the stream terminates first, the values collected so far are
        attached to the raised :class:`InsufficientElementsError` and are not
        returned.
        """
        if n <= 0:
            raise ValueError(f"n must be positive, got {n}")
        if message is None:
            message = f"Expected next {n} elements"
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout_ms / 1000.0
        received: List[T] = []
        while len(received) < n:
            remaining_ms = max(0.0, (deadline - loop.time()) * 1000.0)
            signal = await self._await_signal(self.poll(), remaining_ms)
            if signal is None:
                raise SignalTimeoutError(message, timeout_ms)
            if signal.kind is SignalKind.VALUE:
                received.append(signal.value)  # type: ignore[arg-type]
            elif signal.kind in (SignalKind.FAULT, SignalKind.COMPLETE):
                raise InsufficientElementsError(message, n, received, signal) from signal.error
            else:
                raise UnknownSignalError(signal)
        return received

    async def expect_complete(
        self,
        message: str = "Expected completion",
        timeout_ms: float = DEFAULT_TIMEOUT_MS,
    ) -> None:
        signal = await self._next_signal(message, timeout_ms)
        if signal.kind is SignalKind.COMPLETE:
            return None
        if signal.kind in (SignalKind.VALUE, SignalKind.FAULT):
            raise _unexpected(message, signal)
        raise UnknownSignalError(signal)

    async def expect_error(
        self,
        kind: Type[E],
        message: Optional[str] = None,
        timeout_ms: float = DEFAULT_TIMEOUT_MS,
    ) -> E:
        if message is None:
            message = f"Expected error of type [{kind.__name__}]"
        signal = await self._next_signal(message, timeout_ms)
        if signal.kind is SignalKind.FAULT:
            if isinstance(signal.error, kind):
                return signal.error
            raise _unexpected(message, signal)
        if signal.kind in (SignalKind.VALUE, SignalKind.COMPLETE):
            raise _unexpected(message, signal)
        raise UnknownSignalError(signal)

    async def expect_next_or_complete(
        self,
        message: str = "Expected next element or completion",
        timeout_ms: float = DEFAULT_TIMEOUT_MS,
    ) -> Optional[T]:
        signal = await self._next_signal(message, timeout_ms)
        if signal.kind is SignalKind.VALUE:
            return signal.value
        if signal.kind is SignalKind.COMPLETE:
            return None
        if signal.kind is SignalKind.FAULT:
            raise _unexpected(message, signal)
        raise UnknownSignalError(signal)

    async def expect_none(
        self,
        message: str = "Expected no signal",
        timeout_ms: float = DEFAULT_TIMEOUT_MS,
    ) -> None:
        """Succeed once ``timeout_ms`` passes quietly; fail as soon as anything arrives."""
        signal = await self._await_signal(self.poll(), timeout_ms)
        if signal is None:
            return None
        if signal.kind in (SignalKind.VALUE, SignalKind.FAULT, SignalKind.COMPLETE):
            raise _unexpected(message, signal)
        raise UnknownSignalError(signal)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _next_signal(self, message: str, timeout_ms: float) -> Signal[T]:
        signal = await self._await_signal(self.poll(), timeout_ms)
        if signal is None:
            raise SignalTimeoutError(message, timeout_ms)
        return signal

    @staticmethod
    async def _await_signal(
        poll: PendingPoll[Signal[T]], timeout_ms: float
    ) -> Optional[Signal[T]]:
        """Race ``poll`` against the timer; ``None`` means the timer won."""
        if poll.done():
            return poll.take()
        try:
            await asyncio.wait({poll.future}, timeout=timeout_ms / 1000.0)
            if not poll.done():
                return None
            return poll.take()
        finally:
            # No-op once taken; otherwise detaches the waiter or re-buffers a
            # value delivered while the awaiting task was being cancelled.
            poll.cancel()


def _unexpected(message: str, signal: Signal[object]) -> ExpectationError:
    error = ExpectationError(f"{message} but got {signal.describe()}")
    if signal.error is not None:
        error.__cause__ = signal.error
    return error
