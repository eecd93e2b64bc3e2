"""Shared pytest fixtures for all tests."""
import asyncio
from typing import Any, Callable, List, Optional

import pytest

from reactive_tck import Signal, SignalKind, Subscription, TestEnvironment


def fast_environment(**overrides: Any) -> TestEnvironment:
    """Build a TestEnvironment with short timeouts so suites run quickly.

    Callers override specific timeouts as needed.
    """
    defaults: dict[str, Any] = {
        "default_timeout_ms": 500.0,
        "default_no_signals_timeout_ms": 30.0,
        "default_poll_timeout_ms": 5.0,
    }
    defaults.update(overrides)
    return TestEnvironment(**defaults)


def later(delay_ms: float, fn: Callable[[], None]) -> asyncio.TimerHandle:
    """Schedule a plain callback on the running loop, like a producer thread would."""
    return asyncio.get_running_loop().call_later(delay_ms / 1000.0, fn)


class RecordingSubscriber:
    """Synchronous Subscriber that records every signal it receives.

    ``on_next_hook`` runs after each element is recorded, which lets tests
    issue re-entrant ``request`` calls from inside ``on_next``.
    """

    def __init__(self, on_next_hook: Optional[Callable[["RecordingSubscriber", Any], None]] = None) -> None:
        self.subscription: Optional[Subscription] = None
        self.signals: List[Signal[Any]] = []
        self.subscribe_calls = 0
        self._on_next_hook = on_next_hook

    def on_subscribe(self, subscription: Subscription) -> None:
        self.subscribe_calls += 1
        self.subscription = subscription

    def on_next(self, element: Any) -> None:
        self.signals.append(Signal.of_value(element))
        if self._on_next_hook is not None:
            self._on_next_hook(self, element)

    def on_error(self, error: BaseException) -> None:
        self.signals.append(Signal.of_fault(error))

    def on_complete(self) -> None:
        self.signals.append(Signal.of_complete())

    @property
    def values(self) -> List[Any]:
        return [s.value for s in self.signals if s.kind is SignalKind.VALUE]

    def request(self, n: int) -> None:
        assert self.subscription is not None
        self.subscription.request(n)


@pytest.fixture
def env() -> TestEnvironment:
    """Fast environment for async tests."""
    return fast_environment()
