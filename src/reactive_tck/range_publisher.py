"""Reference Publisher over an integer range with correct demand accounting."""

from __future__ import annotations

import logging
from typing import Optional

from reactive_tck.api import Subscriber
from reactive_tck.models import IllegalDemandError

logger = logging.getLogger("reactive_tck.range_publisher")

# Upper bound on elements emitted per burst before demand is re-read.
MAX_BURST: int = 1 << 16


class RangePublisher:
    """Emits ``start, start + 1, ..., end - 1`` to every subscriber, then completes.

    Each call to :meth:`subscribe` gets an independent cursor, so the
    Publisher supports any number of subscribers (unicast).
    """

    def __init__(self, start: int, end: int) -> None:
        if end < start:
            raise ValueError(f"end ({end}) must not be smaller than start ({start})")
        self.start = start
        self.end = end

    def subscribe(self, subscriber: Subscriber[int]) -> None:
        if subscriber is None:
            raise TypeError("subscriber must not be None (rule 1.9)")
        subscription = RangeSubscription(subscriber, self.start, self.end)
        subscriber.on_subscribe(subscription)
        if self.start == self.end:
            subscription._complete_empty()

    def __repr__(self) -> str:
        return f"RangePublisher(start={self.start}, end={self.end})"


class RangeSubscription:
    """Subscription that tracks outstanding demand as an arbitrary-precision int.

    ``request`` may be called re-entrantly from ``on_next``. Only the
    outermost call runs the emission loop; nested calls add demand and
    return, so the call stack never grows with the number of elements.
    """

    def __init__(self, subscriber: Subscriber[int], start: int, end: int) -> None:
        self._subscriber: Optional[Subscriber[int]] = subscriber
        self._cursor = start
        self._end = end
        self._requested = 0
        self.cancelled = False

    @property
    def requested(self) -> int:
        """Outstanding demand not yet satisfied."""
        return self._requested

    def request(self, n: int) -> None:
        if self.cancelled:
            return
        subscriber = self._subscriber
        if n <= 0:
            logger.debug("Rejecting non-positive demand: %d", n)
            self.cancel()
            if subscriber is not None:
                subscriber.on_error(
                    IllegalDemandError(
                        f"3.9 violated: request(n) requires n > 0, got {n}"
                    )
                )
            return

        previous = self._requested
        self._requested = previous + n
        if previous > 0:
            # The emission loop further up the stack will pick this up.
            return
        self._drain()

    def cancel(self) -> None:
        self.cancelled = True
        self._subscriber = None

    def _drain(self) -> None:
        while True:
            sent = 0
            while sent < MAX_BURST and sent < self._requested and self._cursor < self._end:
                if self.cancelled:
                    return
                subscriber = self._subscriber
                if subscriber is None:
                    return
                value = self._cursor
                self._cursor += 1
                sent += 1
                try:
                    subscriber.on_next(value)
                except Exception:
                    # A raising on_next leaves demand unaccounted; the
                    # subscription cannot continue (rule 2.13).
                    logger.warning("Subscriber.on_next(%r) raised; cancelling %r", value, self)
                    self.cancel()
                    raise

            if self.cancelled:
                return
            if self._cursor == self._end:
                subscriber = self._subscriber
                self.cancel()
                if subscriber is not None:
                    subscriber.on_complete()
                return

            self._requested -= sent
            if self._requested == 0:
                return

    def _complete_empty(self) -> None:
        if self.cancelled:
            return
        subscriber = self._subscriber
        self.cancel()
        if subscriber is not None:
            subscriber.on_complete()

    def __repr__(self) -> str:
        return (
            f"RangeSubscription(cursor={self._cursor}, end={self._end}, "
            f"requested={self._requested}, cancelled={self.cancelled})"
        )
