"""Unit tests for TestSubscriber and ManualSubscriber."""

from typing import Any, List

import pytest

from reactive_tck import (
    ExpectationError,
    IllegalDemandError,
    ManualSubscriber,
    ProtocolViolationError,
    RangePublisher,
    SignalTimeoutError,
    TestSubscriber,
)
from conftest import fast_environment, later


class _RecordingSubscription:
    def __init__(self) -> None:
        self.requests: List[int] = []
        self.cancelled = False

    def request(self, n: int) -> None:
        self.requests.append(n)

    def cancel(self) -> None:
        self.cancelled = True

    def __repr__(self) -> str:
        return "_RecordingSubscription()"


class _HalfSubscription:
    def cancel(self) -> None:
        pass

    def __repr__(self) -> str:
        return "_HalfSubscription()"


# ---------------------------------------------------------------------------
# Subscription handling
# ---------------------------------------------------------------------------


class TestExpectSubscription:

    @pytest.mark.asyncio
    async def test_returns_subscription_once_delivered(self, env: Any) -> None:
        sub: TestSubscriber[int] = TestSubscriber(env)
        subscription = _RecordingSubscription()
        later(5, lambda: sub.on_subscribe(subscription))

        assert await sub.expect_subscription() is subscription
        assert sub.is_subscribed

    @pytest.mark.asyncio
    async def test_times_out_without_on_subscribe(self) -> None:
        sub: TestSubscriber[int] = TestSubscriber(fast_environment(default_timeout_ms=20))

        with pytest.raises(SignalTimeoutError) as exc_info:
            await sub.expect_subscription()
        assert str(exc_info.value) == "Expected subscription within 20ms but timed out"

    @pytest.mark.asyncio
    async def test_none_subscription_is_violation(self, env: Any) -> None:
        sub: TestSubscriber[int] = TestSubscriber(env)
        sub.on_subscribe(None)  # type: ignore[arg-type]

        with pytest.raises(ProtocolViolationError, match="Expected subscription but got nothing"):
            await sub.expect_subscription()

    @pytest.mark.asyncio
    async def test_subscription_without_methods_names_missing_fields(self, env: Any) -> None:
        sub: TestSubscriber[int] = TestSubscriber(env)
        sub.on_subscribe(object())  # type: ignore[arg-type]

        with pytest.raises(ProtocolViolationError, match=r"with missing fields \[request, cancel\]"):
            await sub.expect_subscription()

    @pytest.mark.asyncio
    async def test_subscription_missing_only_request(self, env: Any) -> None:
        sub: TestSubscriber[int] = TestSubscriber(env)
        sub.on_subscribe(_HalfSubscription())  # type: ignore[arg-type]

        with pytest.raises(ProtocolViolationError) as exc_info:
            await sub.expect_subscription()
        assert str(exc_info.value) == (
            "Expected subscription but got _HalfSubscription() with missing fields [request]"
        )

    @pytest.mark.asyncio
    async def test_duplicate_on_subscribe_is_recorded(self, env: Any) -> None:
        sub: TestSubscriber[int] = TestSubscriber(env)
        first = _RecordingSubscription()
        sub.on_subscribe(first)
        sub.on_subscribe(_RecordingSubscription())

        assert await sub.expect_subscription() is first
        violation = await sub.received.expect_error(ProtocolViolationError)
        assert str(violation) == (
            "Unexpected duplicate Subscriber.on_subscribe(_RecordingSubscription())"
        )


class TestBaseSubscriberSignals:
    """The plain TestSubscriber treats every data signal as unexpected."""

    @pytest.mark.asyncio
    async def test_on_next_is_recorded_as_violation(self, env: Any) -> None:
        sub: TestSubscriber[int] = TestSubscriber(env)
        sub.on_next(3)
        violation = await sub.received.expect_error(ProtocolViolationError)
        assert str(violation) == "Unexpected Subscriber.on_next(3)"

    @pytest.mark.asyncio
    async def test_on_error_is_recorded_as_violation(self, env: Any) -> None:
        sub: TestSubscriber[int] = TestSubscriber(env)
        sub.on_error(RuntimeError("late"))
        violation = await sub.received.expect_error(ProtocolViolationError)
        assert str(violation) == "Unexpected Subscriber.on_error(RuntimeError: late)"

    @pytest.mark.asyncio
    async def test_on_complete_is_recorded_as_violation(self, env: Any) -> None:
        sub: TestSubscriber[int] = TestSubscriber(env)
        sub.on_complete()
        with pytest.raises(ExpectationError, match=r"Unexpected Subscriber.on_complete\(\)"):
            await sub.received.expect_complete()

    @pytest.mark.asyncio
    async def test_cancel_forwards_to_subscription(self, env: Any) -> None:
        sub: TestSubscriber[int] = TestSubscriber(env)
        subscription = _RecordingSubscription()
        sub.on_subscribe(subscription)

        await sub.cancel()
        assert subscription.cancelled

    @pytest.mark.asyncio
    async def test_cancel_without_subscription_records_violation(self) -> None:
        sub: TestSubscriber[int] = TestSubscriber(fast_environment(default_timeout_ms=10))

        await sub.cancel()
        violation = await sub.received.expect_error(ProtocolViolationError)
        assert str(violation).startswith("Expected Subscription but got [Expected subscription within 10ms")


# ---------------------------------------------------------------------------
# ManualSubscriber against the reference publisher
# ---------------------------------------------------------------------------


class TestManualSubscriber:

    @pytest.mark.asyncio
    async def test_request_next_element_then_completion(self, env: Any) -> None:
        sub: ManualSubscriber[int] = ManualSubscriber(env)
        RangePublisher(0, 2).subscribe(sub)

        assert await sub.request_next_element() == 0
        assert await sub.request_next_element_or_completion() == 1
        await sub.request_completion()
        await sub.expect_none()

    @pytest.mark.asyncio
    async def test_request_next_elements(self, env: Any) -> None:
        sub: ManualSubscriber[int] = ManualSubscriber(env)
        RangePublisher(10, 15).subscribe(sub)

        assert await sub.request_next_elements(3) == [10, 11, 12]
        assert await sub.request_next_elements(2) == [13, 14]

    @pytest.mark.asyncio
    async def test_next_elements_reports_short_stream(self, env: Any) -> None:
        sub: ManualSubscriber[int] = ManualSubscriber(env)
        RangePublisher(0, 2).subscribe(sub)

        with pytest.raises(ExpectationError, match=r"Expected next \[3\] elements but got completion after 2 of 3"):
            await sub.request_next_elements(3)

    @pytest.mark.asyncio
    async def test_request_forwards_demand(self, env: Any) -> None:
        sub: ManualSubscriber[int] = ManualSubscriber(env)
        subscription = _RecordingSubscription()
        sub.on_subscribe(subscription)

        await sub.request(4)
        await sub.request(1)
        assert subscription.requests == [4, 1]

    @pytest.mark.asyncio
    async def test_expect_next_matches_value(self, env: Any) -> None:
        sub: ManualSubscriber[str] = await _with_demand(ManualSubscriber(env), 1)
        sub.on_next("a")
        await sub.expect_next("a")

    @pytest.mark.asyncio
    async def test_expect_next_mismatch(self, env: Any) -> None:
        sub: ManualSubscriber[str] = await _with_demand(ManualSubscriber(env), 1)
        sub.on_next("b")

        with pytest.raises(ExpectationError) as exc_info:
            await sub.expect_next("a")
        assert str(exc_info.value) == "Expected element ['a'] on downstream but received ['b']"

    @pytest.mark.asyncio
    async def test_expect_completion_failure_message(self, env: Any) -> None:
        sub: ManualSubscriber[int] = await _with_demand(ManualSubscriber(env), 1)
        sub.on_next(1)

        with pytest.raises(ExpectationError) as exc_info:
            await sub.expect_completion()
        assert str(exc_info.value) == "Did not receive expected stream completion but got next [1]"

    @pytest.mark.asyncio
    async def test_expect_error_returns_error(self, env: Any) -> None:
        sub: ManualSubscriber[int] = ManualSubscriber(env)
        error = ValueError("bad")
        sub.on_error(error)
        assert await sub.expect_error(ValueError) is error

    @pytest.mark.asyncio
    async def test_expect_error_with_message_accepts_any_part(self, env: Any) -> None:
        sub: ManualSubscriber[int] = ManualSubscriber(env)
        RangePublisher(0, 3).subscribe(sub)

        await sub.request(0)
        error = await sub.expect_error_with_message(IllegalDemandError, ["nope", "3.9"])
        assert "n > 0" in str(error)

    @pytest.mark.asyncio
    async def test_expect_error_with_message_missing_parts(self, env: Any) -> None:
        sub: ManualSubscriber[int] = ManualSubscriber(env)
        sub.on_error(ValueError("something else"))

        with pytest.raises(ExpectationError, match="missing any of"):
            await sub.expect_error_with_message(ValueError, "3.9")

    @pytest.mark.asyncio
    async def test_expect_none_uses_no_signals_timeout(self) -> None:
        sub: ManualSubscriber[int] = ManualSubscriber(
            fast_environment(default_timeout_ms=5000, default_no_signals_timeout_ms=10)
        )
        await sub.expect_none()

    @pytest.mark.asyncio
    async def test_expect_none_fails_on_signal(self, env: Any) -> None:
        sub: ManualSubscriber[int] = ManualSubscriber(env)
        sub.on_complete()
        with pytest.raises(ExpectationError, match="Did not expect any further signal but got completion"):
            await sub.expect_none()

    @pytest.mark.asyncio
    async def test_signals_after_completion_surface_as_violations(self, env: Any) -> None:
        sub: ManualSubscriber[int] = await _with_demand(ManualSubscriber(env), 1)
        sub.on_complete()
        sub.on_next(9)

        await sub.expect_completion()
        violation = await sub.received.expect_error(ProtocolViolationError)
        assert "after terminal signal" in str(violation)


# ---------------------------------------------------------------------------
# Demand accounting
# ---------------------------------------------------------------------------


class _FloodingSubscription:
    """Answers any request with three elements regardless of the amount."""

    def __init__(self, subscriber: ManualSubscriber[int]) -> None:
        self.subscriber = subscriber

    def request(self, n: int) -> None:
        for i in range(3):
            self.subscriber.on_next(i)

    def cancel(self) -> None:
        pass


class TestDemandAccounting:

    @pytest.mark.asyncio
    async def test_requested_tracks_outstanding_demand(self, env: Any) -> None:
        sub: ManualSubscriber[int] = await _with_demand(ManualSubscriber(env), 3)
        assert sub.requested == 3

        sub.on_next(0)
        sub.on_next(1)
        assert sub.requested == 1
        assert await sub.next_elements(2) == [0, 1]

    @pytest.mark.asyncio
    async def test_non_positive_request_adds_no_demand(self, env: Any) -> None:
        sub: ManualSubscriber[int] = await _with_demand(ManualSubscriber(env), 0)
        await sub.request(-2)
        assert sub.requested == 0

    @pytest.mark.asyncio
    async def test_on_next_without_demand_is_violation(self, env: Any) -> None:
        sub: ManualSubscriber[int] = ManualSubscriber(env)
        sub.on_subscribe(_RecordingSubscription())
        sub.on_next(5)

        violation = await sub.received.expect_error(ProtocolViolationError)
        assert str(violation) == "Received more on_next signals than requested: on_next(5)"
        await sub.expect_none()

    @pytest.mark.asyncio
    async def test_elements_beyond_demand_are_reported(self, env: Any) -> None:
        sub: ManualSubscriber[int] = ManualSubscriber(env)
        sub.on_subscribe(_FloodingSubscription(sub))

        assert await sub.request_next_element() == 0
        assert sub.requested == 0
        error = await sub.expect_error_with_message(
            ProtocolViolationError, "Received more on_next signals than requested"
        )
        assert "on_next(1)" in str(error)


async def _with_demand(sub: ManualSubscriber[Any], n: int) -> ManualSubscriber[Any]:
    sub.on_subscribe(_RecordingSubscription())
    await sub.request(n)
    return sub
