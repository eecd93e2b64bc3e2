"""Test Subscribers used to drive and observe a Publisher under test."""

from __future__ import annotations

import asyncio
from typing import Generic, List, Optional, Sequence, Type, TypeVar, Union

from reactive_tck.api import Subscription
from reactive_tck.environment import TestEnvironment
from reactive_tck.models import (
    ExpectationError,
    ProtocolViolationError,
    SignalTimeoutError,
    describe_error,
)
from reactive_tck.receptacle import Receptacle

T = TypeVar("T")
E = TypeVar("E", bound=BaseException)


class TestSubscriber(Generic[T]):
    """Subscriber that captures its Subscription and treats any data signal as unexpected.

    Signals are recorded into :attr:`received` and never raised back into the
    Publisher, so a misbehaving Publisher surfaces as a failed expectation
    rather than as an exception inside its own call stack.
    """

    __test__ = False  # not a pytest test class

    def __init__(self, env: Optional[TestEnvironment] = None) -> None:
        self.env = env if env is not None else TestEnvironment()
        self.received: Receptacle[T] = Receptacle()
        self._subscription: Optional[Subscription] = None
        self._subscribed = asyncio.Event()

    def on_subscribe(self, subscription: Subscription) -> None:
        if self._subscribed.is_set():
            self.received.violation(
                f"Unexpected duplicate Subscriber.on_subscribe({subscription!r})"
            )
            return
        self._subscription = subscription
        self._subscribed.set()

    def on_next(self, element: T) -> None:
        self.received.violation(f"Unexpected Subscriber.on_next({element!r})")

    def on_error(self, error: BaseException) -> None:
        self.received.violation(f"Unexpected Subscriber.on_error({describe_error(error)})")

    def on_complete(self) -> None:
        self.received.violation("Unexpected Subscriber.on_complete()")

    @property
    def is_subscribed(self) -> bool:
        return self._subscribed.is_set()

    async def expect_subscription(
        self,
        timeout_ms: Optional[float] = None,
        message: str = "Expected subscription",
    ) -> Subscription:
        """Wait for ``on_subscribe`` and check the Subscription has ``request`` and ``cancel``."""
        timeout_ms = self._timeout(timeout_ms)
        if not self._subscribed.is_set():
            try:
                await asyncio.wait_for(self._subscribed.wait(), timeout_ms / 1000.0)
            except asyncio.TimeoutError:
                raise SignalTimeoutError(message, timeout_ms) from None

        subscription = self._subscription
        if subscription is None:
            raise ProtocolViolationError(f"{message} but got nothing")
        missing = [
            name for name in ("request", "cancel")
            if not callable(getattr(subscription, name, None))
        ]
        if missing:
            raise ProtocolViolationError(
                f"{message} but got {subscription!r} "
                f"with missing fields [{', '.join(missing)}]"
            )
        return subscription

    async def cancel(self) -> None:
        """Cancel the Subscription; a missing one is recorded, not raised."""
        try:
            subscription = await self.expect_subscription()
        except ExpectationError as e:
            self.received.violation(f"Expected Subscription but got [{e}]")
            return
        subscription.cancel()

    def _timeout(self, timeout_ms: Optional[float]) -> float:
        return self.env.default_timeout_ms if timeout_ms is None else timeout_ms


class ManualSubscriber(TestSubscriber[T]):
    """Subscriber whose demand is driven explicitly by the test.

    Example:
        >>> async def check(publisher):
        ...     sub = ManualSubscriber()
        ...     publisher.subscribe(sub)
        ...     assert await sub.request_next_element() == 0
        ...     await sub.request_completion()

    Outstanding demand is tracked: an ``on_next`` beyond what was requested
    is recorded as a violation instead of being buffered as an element.
    """

    def __init__(self, env: Optional[TestEnvironment] = None) -> None:
        super().__init__(env)
        self._requested = 0

    @property
    def requested(self) -> int:
        """Demand issued through this subscriber and not yet satisfied."""
        return self._requested

    def on_next(self, element: T) -> None:
        if self._requested == 0:
            self.received.violation(
                f"Received more on_next signals than requested: on_next({element!r})"
            )
            return
        self._requested -= 1
        self.received.next(element)

    def on_error(self, error: BaseException) -> None:
        self.received.error(error)

    def on_complete(self) -> None:
        self.received.terminate()

    async def request(self, n: int) -> None:
        subscription = await self.expect_subscription()
        self._issue_demand(subscription, n)

    def _issue_demand(self, subscription: Subscription, n: int) -> None:
        # Non-positive demand is illegal and never becomes outstanding.
        if n > 0:
            self._requested += n
        subscription.request(n)

    # -- request-then-expect compositions -------------------------------

    async def request_next_element(
        self,
        timeout_ms: Optional[float] = None,
        message: str = "Expected next element",
    ) -> T:
        await self.request(1)
        return await self.next_element(timeout_ms, message)

    async def request_next_element_or_completion(
        self,
        timeout_ms: Optional[float] = None,
        message: str = "Expected next element or completion",
    ) -> Optional[T]:
        await self.request(1)
        return await self.next_element_or_completion(timeout_ms, message)

    async def request_completion(
        self,
        timeout_ms: Optional[float] = None,
        message: str = "Expected completion",
    ) -> None:
        await self.request(1)
        await self.expect_completion(timeout_ms, message)

    async def request_next_elements(
        self,
        elements: int,
        timeout_ms: Optional[float] = None,
        message: Optional[str] = None,
    ) -> List[T]:
        await self.request(elements)
        return await self.next_elements(elements, timeout_ms, message)

    # -- expectations ----------------------------------------------------

    async def next_element(
        self,
        timeout_ms: Optional[float] = None,
        message: str = "Expected next element",
    ) -> T:
        return await self.received.expect_next(message, self._timeout(timeout_ms))

    async def next_element_or_completion(
        self,
        timeout_ms: Optional[float] = None,
        message: str = "Expected next element or completion",
    ) -> Optional[T]:
        return await self.received.expect_next_or_complete(message, self._timeout(timeout_ms))

    async def next_elements(
        self,
        elements: int,
        timeout_ms: Optional[float] = None,
        message: Optional[str] = None,
    ) -> List[T]:
        if message is None:
            message = f"Expected next [{elements}] elements"
        return await self.received.expect_next_n(elements, message, self._timeout(timeout_ms))

    async def expect_next(self, expected: T, timeout_ms: Optional[float] = None) -> None:
        received = await self.next_element(timeout_ms)
        if received != expected:
            raise ExpectationError(
                f"Expected element [{expected!r}] on downstream but received [{received!r}]"
            )

    async def expect_completion(
        self,
        timeout_ms: Optional[float] = None,
        message: str = "Did not receive expected stream completion",
    ) -> None:
        await self.received.expect_complete(message, self._timeout(timeout_ms))

    async def expect_error(
        self,
        kind: Type[E],
        timeout_ms: Optional[float] = None,
        message: Optional[str] = None,
    ) -> E:
        if message is None:
            message = f"Expected on_error({kind.__name__})"
        return await self.received.expect_error(kind, message, self._timeout(timeout_ms))

    async def expect_error_with_message(
        self,
        kind: Type[E],
        required_parts: Union[str, Sequence[str]],
        timeout_ms: Optional[float] = None,
    ) -> E:
        """Expect an error of ``kind`` whose message contains any of ``required_parts``."""
        parts = [required_parts] if isinstance(required_parts, str) else list(required_parts)
        error = await self.expect_error(kind, timeout_ms)
        text = str(error)
        if not any(part in text for part in parts):
            raise ExpectationError(
                f"Got expected exception [{kind.__name__}] but missing any of "
                f"{parts!r} message parts, was: {text}"
            )
        return error

    async def expect_none(
        self,
        timeout_ms: Optional[float] = None,
        message: str = "Did not expect any further signal",
    ) -> None:
        if timeout_ms is None:
            timeout_ms = self.env.no_signals_timeout_ms
        await self.received.expect_none(message, timeout_ms)
