"""Single-consumer asynchronous handoff queue.

Producers call :meth:`AsyncQueue.push` from plain (possibly re-entrant)
callbacks; one consumer calls :meth:`AsyncQueue.poll` from a coroutine and
awaits the returned :class:`PendingPoll`.

Example:
    >>> async def main():
    ...     queue = AsyncQueue()
    ...     queue.push(1)
    ...     return await queue.poll()
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from enum import Enum
from typing import Any, Deque, Dict, FrozenSet, Generator, Generic, Optional, Tuple, TypeVar

from reactive_tck.models import IllegalUsageError

logger = logging.getLogger("reactive_tck.signal_queue")

T = TypeVar("T")


class QueueState(str, Enum):
    """Buffer and waiter are mutually exclusive, so these three states cover all cases."""

    EMPTY = "empty"
    BUFFERED = "buffered"
    WAITING = "waiting"


_ALLOWED_TRANSITIONS: Dict[QueueState, FrozenSet[QueueState]] = {
    QueueState.EMPTY: frozenset({QueueState.EMPTY, QueueState.BUFFERED, QueueState.WAITING}),
    QueueState.BUFFERED: frozenset({QueueState.EMPTY, QueueState.BUFFERED}),
    QueueState.WAITING: frozenset({QueueState.EMPTY, QueueState.BUFFERED}),
}


class PendingPoll(Generic[T]):
    """Result of :meth:`AsyncQueue.poll`: an awaitable that can be cancelled.

    Cancelling before the value has been taken detaches the waiter; a value
    that was already handed over but not yet taken goes back to the head of
    the queue.
    """

    def __init__(self, queue: "AsyncQueue[T]", future: "asyncio.Future[T]") -> None:
        self._queue = queue
        self.future = future
        self._taken = False

    def __await__(self) -> Generator[Any, None, T]:
        value = yield from self.future.__await__()
        self._taken = True
        return value

    def done(self) -> bool:
        return self.future.done()

    def take(self) -> T:
        """Return the delivered value; only valid once :meth:`done` is true."""
        if self.future.cancelled():
            raise IllegalUsageError("Cannot take a value from a cancelled poll")
        value = self.future.result()
        self._taken = True
        return value

    def cancel(self) -> None:
        if self._taken:
            return
        self._queue._detach(self)

    def __repr__(self) -> str:
        if self.future.cancelled():
            status = "cancelled"
        elif self.future.done():
            status = "taken" if self._taken else "delivered"
        else:
            status = "pending"
        return f"PendingPoll({status})"


class AsyncQueue(Generic[T]):
    """FIFO queue that hands values to at most one waiting consumer."""

    def __init__(self) -> None:
        self._buffer: Deque[T] = deque()
        self._waiter: Optional[PendingPoll[T]] = None
        self._state = QueueState.EMPTY

    @property
    def state(self) -> QueueState:
        return self._state

    def is_empty(self) -> bool:
        return not self._buffer

    def __len__(self) -> int:
        return len(self._buffer)

    def snapshot(self) -> Tuple[T, ...]:
        """Copy of the undelivered values, oldest first."""
        return tuple(self._buffer)

    def push(self, value: T) -> None:
        waiter = self._take_live_waiter()
        if waiter is not None:
            self._transition(QueueState.EMPTY)
            waiter.future.set_result(value)
            return
        self._buffer.append(value)
        self._transition(QueueState.BUFFERED)

    def poll(self) -> PendingPoll[T]:
        """Dequeue the next value, or register as the single waiter for it.

        Raises:
            IllegalUsageError: If another poll is still waiting.
        """
        future: asyncio.Future[T] = asyncio.get_running_loop().create_future()
        poll = PendingPoll(self, future)
        if self._buffer:
            future.set_result(self._buffer.popleft())
            self._transition(QueueState.BUFFERED if self._buffer else QueueState.EMPTY)
            return poll
        if self._waiter is not None and not self._waiter.future.done():
            raise IllegalUsageError("Only a single pending poll is allowed")
        self._take_live_waiter()
        self._waiter = poll
        self._transition(QueueState.WAITING)
        return poll

    def _take_live_waiter(self) -> Optional[PendingPoll[T]]:
        # A waiter whose future was cancelled from outside (its awaiting task
        # was cancelled) is stale and is dropped here.
        waiter = self._waiter
        self._waiter = None
        if waiter is None or waiter.future.done():
            if self._state is QueueState.WAITING:
                self._transition(QueueState.EMPTY)
            return None
        return waiter

    def _detach(self, poll: PendingPoll[T]) -> None:
        if self._waiter is poll:
            self._waiter = None
            self._transition(QueueState.EMPTY)
            poll.future.cancel()
            return
        if poll.future.done() and not poll.future.cancelled():
            value = poll.future.result()
            logger.debug("Re-buffering value delivered to a cancelled poll: %r", value)
            waiter = self._take_live_waiter()
            if waiter is not None:
                self._transition(QueueState.EMPTY)
                waiter.future.set_result(value)
            else:
                self._buffer.appendleft(value)
                self._transition(QueueState.BUFFERED)
            # Mark handled so a second cancel() cannot re-buffer it again.
            poll._taken = True

    def _transition(self, target: QueueState) -> None:
        if target not in _ALLOWED_TRANSITIONS[self._state]:
            raise IllegalUsageError(
                f"Illegal queue transition {self._state.value} -> {target.value}"
            )
        self._state = target
