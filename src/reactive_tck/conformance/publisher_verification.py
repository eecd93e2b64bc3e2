"""Publisher verification suite and the driver that runs it.

Usage::

    from reactive_tck.conformance import run_publisher_verification

    report = run_publisher_verification(MyProvider())
    assert report.success

Each check receives the :class:`TestEnvironment` and a freshly created
Publisher. Checks signal failure by raising ``AssertionError`` (every
``expect_*`` failure is one); any other exception is also recorded as a
failure. Failures are local to one check and never stop the run.
"""

from __future__ import annotations

import asyncio
import fnmatch
import gc
import logging
import time
import weakref
from typing import Any, Callable, List, Optional, Sequence

from reactive_tck.api import UNBOUNDED_DEMAND, Publisher, Subscription
from reactive_tck.conformance.provider import PublisherTestProvider
from reactive_tck.conformance.results import CheckOutcome, CheckResult, VerificationReport
from reactive_tck.conformance.rules import RuleCheck, RuleRegistry, RuleStatus
from reactive_tck.environment import TestEnvironment
from reactive_tck.models import (
    CheckSkipped,
    ExpectationError,
    ProtocolViolationError,
    SignalTimeoutError,
    describe_error,
)
from reactive_tck.subscriber import ManualSubscriber

logger = logging.getLogger("reactive_tck.conformance.publisher_verification")

PUBLISHER_RULES = RuleRegistry()

_required = PUBLISHER_RULES.required
_optional = PUBLISHER_RULES.optional

# Nesting of on_next -> request -> on_next tolerated before calling it recursion.
BOUNDED_RECURSION_DEPTH = 1

_RECURSION_CHECK_ELEMENTS = 20
_OVERFLOW_CHECK_CALLS = 10


def _subscribe(publisher: Publisher[Any], env: TestEnvironment) -> ManualSubscriber[Any]:
    sub: ManualSubscriber[Any] = ManualSubscriber(env)
    publisher.subscribe(sub)
    return sub


# ---------------------------------------------------------------------------
# Rule 1.x: Publisher
# ---------------------------------------------------------------------------


@_required("1.01", "createPublisher1MustProduceAStreamOfExactly1Element",
           elements=1, completion_required=True)
async def _create_publisher_1(env: TestEnvironment, publisher: Publisher[Any]) -> None:
    sub = _subscribe(publisher, env)
    await sub.expect_subscription()
    await sub.request_next_element()
    await sub.request_completion()
    await sub.expect_none()


@_required("1.01", "createPublisher3MustProduceAStreamOfExactly3Elements",
           elements=3, completion_required=True)
async def _create_publisher_3(env: TestEnvironment, publisher: Publisher[Any]) -> None:
    sub = _subscribe(publisher, env)
    for _ in range(3):
        await sub.request_next_element()
    await sub.request_completion()
    await sub.expect_none()


@_required("1.01", "subscriptionRequestMustResultInTheCorrectNumberOfProducedElements",
           elements=5)
async def _correct_number_of_elements(env: TestEnvironment, publisher: Publisher[Any]) -> None:
    sub = _subscribe(publisher, env)
    await sub.expect_subscription()
    await sub.expect_none(message=f"Publisher {publisher!r} produced a signal before the first request")
    await sub.request(1)
    await sub.next_element(message=f"Publisher {publisher!r} did not produce the requested element")
    await sub.expect_none(message=f"Publisher {publisher!r} produced an unrequested signal")
    await sub.request(1)
    await sub.request(2)
    await sub.next_elements(3, message=f"Publisher {publisher!r} did not produce the 3 requested elements")
    await sub.expect_none(message=f"Publisher {publisher!r} produced an unrequested signal")
    await sub.cancel()


@_required("1.02", "maySignalLessThanRequestedAndTerminateSubscription",
           elements=3, completion_required=True)
async def _may_signal_less_than_requested(env: TestEnvironment, publisher: Publisher[Any]) -> None:
    sub = _subscribe(publisher, env)
    await sub.request(10)
    await sub.next_elements(3)
    await sub.expect_completion()


@_optional("1.04", "mustSignalOnErrorWhenFails", needs_failed_publisher=True)
async def _must_signal_on_error_when_fails(env: TestEnvironment, publisher: Publisher[Any]) -> None:
    sub = _subscribe(publisher, env)
    await sub.expect_error(BaseException)
    if not sub.is_subscribed:
        raise ProtocolViolationError(
            f"Publisher {publisher!r} signalled on_error before on_subscribe (rule 1.9)"
        )


@_required("1.05", "mustSignalOnCompleteWhenFiniteStreamTerminates",
           elements=3, completion_required=True)
async def _must_signal_on_complete(env: TestEnvironment, publisher: Publisher[Any]) -> None:
    sub = _subscribe(publisher, env)
    await sub.request_next_elements(3)
    await sub.request_completion()
    await sub.expect_none()


@_optional("1.05", "emptyStreamMustTerminateBySignallingOnComplete",
           elements=0, completion_required=True)
async def _empty_stream_completes(env: TestEnvironment, publisher: Publisher[Any]) -> None:
    sub = _subscribe(publisher, env)
    await sub.request(1)
    await sub.expect_completion()
    await sub.expect_none()


@_required("1.07", "mustNotEmitFurtherSignalsOnceOnCompleteHasBeenSignalled",
           elements=1, completion_required=True)
async def _no_signals_after_complete(env: TestEnvironment, publisher: Publisher[Any]) -> None:
    sub = _subscribe(publisher, env)
    await sub.request(10)
    await sub.next_element()
    await sub.expect_completion()
    await sub.request(10)
    await sub.expect_none()


class _OnSubscribeFirstSubscriber(ManualSubscriber[Any]):
    """Flags any signal that arrives before ``on_subscribe``."""

    def on_next(self, element: Any) -> None:
        self._require_subscribed(f"on_next({element!r})")
        super().on_next(element)

    def on_error(self, error: BaseException) -> None:
        self._require_subscribed(f"on_error({describe_error(error)})")
        super().on_error(error)

    def on_complete(self) -> None:
        self._require_subscribed("on_complete()")
        super().on_complete()

    def _require_subscribed(self, call: str) -> None:
        if not self.is_subscribed:
            self.received.violation(f"Subscriber.{call} was signalled before on_subscribe (rule 1.9)")


@_required("1.09", "mustIssueOnSubscribeForNonNullSubscriber", elements=0)
async def _must_issue_on_subscribe(env: TestEnvironment, publisher: Publisher[Any]) -> None:
    sub: _OnSubscribeFirstSubscriber = _OnSubscribeFirstSubscriber(env)
    publisher.subscribe(sub)
    await sub.expect_subscription(
        message=f"Publisher {publisher!r} did not call on_subscribe on the provided Subscriber"
    )
    # Anything recorded so far must be a legitimate stream signal, not a violation.
    for signal in sub.received.snapshot():
        if isinstance(signal.error, ProtocolViolationError):
            raise signal.error


@_required("1.09", "subscribeMustRaiseTypeErrorOnNoneSubscriber", elements=0)
async def _subscribe_none_raises(env: TestEnvironment, publisher: Publisher[Any]) -> None:
    try:
        publisher.subscribe(None)  # type: ignore[arg-type]
    except TypeError:
        return
    except Exception as e:
        raise ProtocolViolationError(
            f"Publisher {publisher!r} raised {describe_error(e)} for subscribe(None) "
            f"instead of TypeError"
        ) from e
    raise ProtocolViolationError(
        f"Publisher {publisher!r} accepted subscribe(None) without raising TypeError"
    )


@_optional("1.11", "maySupportMultiSubscribe", elements=1)
async def _may_support_multi_subscribe(env: TestEnvironment, publisher: Publisher[Any]) -> None:
    first = _subscribe(publisher, env)
    second = _subscribe(publisher, env)
    await first.expect_subscription()
    await second.expect_subscription()


async def _collect_from_several(
    env: TestEnvironment,
    publisher: Publisher[Any],
    elements: int,
    one_by_one: bool,
) -> List[List[Any]]:
    subs = [_subscribe(publisher, env) for _ in range(3)]
    sequences: List[List[Any]] = []
    for sub in subs:
        if one_by_one:
            sequences.append([await sub.request_next_element() for _ in range(elements)])
        else:
            sequences.append(await sub.request_next_elements(elements))
    return sequences


def _assert_same_sequences(publisher: Publisher[Any], sequences: List[List[Any]]) -> None:
    first = sequences[0]
    for other in sequences[1:]:
        if other != first:
            raise ExpectationError(
                f"Publisher {publisher!r} produced different sequences to its subscribers: "
                f"{first!r} vs {other!r}"
            )


@_optional(
    "1.11",
    "multicast_mustProduceTheSameElementsInTheSameSequenceToAllOfItsSubscribersWhenRequestingOneByOne",
    elements=5,
)
async def _multicast_one_by_one(env: TestEnvironment, publisher: Publisher[Any]) -> None:
    _assert_same_sequences(publisher, await _collect_from_several(env, publisher, 5, True))


@_optional(
    "1.11",
    "multicast_mustProduceTheSameElementsInTheSameSequenceToAllOfItsSubscribersWhenRequestingManyUpfront",
    elements=5,
)
async def _multicast_many_upfront(env: TestEnvironment, publisher: Publisher[Any]) -> None:
    _assert_same_sequences(publisher, await _collect_from_several(env, publisher, 5, False))


@_optional(
    "1.11",
    "multicast_mustProduceTheSameElementsInTheSameSequenceToAllOfItsSubscribersWhenRequestingManyUpfrontAndCompleteAsExpected",
    elements=3,
    completion_required=True,
)
async def _multicast_many_upfront_and_complete(
    env: TestEnvironment, publisher: Publisher[Any]
) -> None:
    subs = [_subscribe(publisher, env) for _ in range(3)]
    sequences: List[List[Any]] = []
    for sub in subs:
        await sub.request(4)
        sequences.append(await sub.next_elements(3))
        await sub.expect_completion()
    _assert_same_sequences(publisher, sequences)


# ---------------------------------------------------------------------------
# Rule 3.x: Subscription
# ---------------------------------------------------------------------------


class _SynchronousRequestSubscriber(ManualSubscriber[Any]):
    """Requests one element from inside on_subscribe and each on_next."""

    def __init__(self, env: TestEnvironment, limit: int) -> None:
        super().__init__(env)
        self._limit = limit
        self._seen = 0
        self._subscription_ref: Optional[Subscription] = None

    def on_subscribe(self, subscription: Subscription) -> None:
        first = not self.is_subscribed
        super().on_subscribe(subscription)
        if first:
            self._subscription_ref = subscription
            self._issue_demand(subscription, 1)

    def on_next(self, element: Any) -> None:
        super().on_next(element)
        self._seen += 1
        if self._seen < self._limit and self._subscription_ref is not None:
            self._issue_demand(self._subscription_ref, 1)


@_required("3.02", "mustAllowSynchronousRequestCallsFromOnNextAndOnSubscribe", elements=6)
async def _synchronous_request_calls(env: TestEnvironment, publisher: Publisher[Any]) -> None:
    sub = _SynchronousRequestSubscriber(env, limit=6)
    publisher.subscribe(sub)
    await sub.next_elements(6)
    await sub.cancel()


class _RecursionTrackingSubscriber(ManualSubscriber[Any]):
    """Requests from on_next and records how deep on_next calls nest."""

    def __init__(self, env: TestEnvironment, limit: int) -> None:
        super().__init__(env)
        self._limit = limit
        self._seen = 0
        self._depth = 0
        self._violated = False
        self._subscription_ref: Optional[Subscription] = None

    def on_subscribe(self, subscription: Subscription) -> None:
        if not self.is_subscribed:
            self._subscription_ref = subscription
        super().on_subscribe(subscription)

    def on_next(self, element: Any) -> None:
        self._depth += 1
        try:
            if self._depth > BOUNDED_RECURSION_DEPTH and not self._violated:
                self._violated = True
                self.received.violation(
                    f"Got on_next({element!r}) at call depth {self._depth}, "
                    f"which exceeds the allowed depth of {BOUNDED_RECURSION_DEPTH}: "
                    f"request must not call on_next recursively (rule 3.3)"
                )
            super().on_next(element)
            self._seen += 1
            if self._seen < self._limit and not self._violated and self._subscription_ref is not None:
                self._issue_demand(self._subscription_ref, 1)
        finally:
            self._depth -= 1


@_required("3.03", "mustNotAllowUnboundedRecursion", elements=_RECURSION_CHECK_ELEMENTS)
async def _no_unbounded_recursion(env: TestEnvironment, publisher: Publisher[Any]) -> None:
    sub = _RecursionTrackingSubscriber(env, limit=_RECURSION_CHECK_ELEMENTS)
    publisher.subscribe(sub)
    await sub.request(1)
    await sub.next_elements(_RECURSION_CHECK_ELEMENTS)
    await sub.cancel()


@_required("3.06", "afterSubscriptionIsCancelledRequestMustBeNops", elements=5)
async def _request_after_cancel_is_nop(env: TestEnvironment, publisher: Publisher[Any]) -> None:
    sub = _subscribe(publisher, env)
    await sub.request_next_element()
    await sub.cancel()
    await sub.request(1)
    await sub.request(10)
    await sub.expect_none()


@_required("3.07", "afterSubscriptionIsCancelledAdditionalCancelationsMustBeNops", elements=1)
async def _cancel_after_cancel_is_nop(env: TestEnvironment, publisher: Publisher[Any]) -> None:
    sub = _subscribe(publisher, env)
    await sub.cancel()
    await sub.cancel()
    await sub.cancel()
    await sub.expect_none()


@_required("3.09", "requestZeroMustSignalIllegalArgumentException", elements=10)
async def _request_zero(env: TestEnvironment, publisher: Publisher[Any]) -> None:
    sub = _subscribe(publisher, env)
    await sub.request(0)
    await sub.expect_error(ValueError)


@_required("3.09", "requestNegativeNumberMustSignalIllegalArgumentException", elements=10)
async def _request_negative(env: TestEnvironment, publisher: Publisher[Any]) -> None:
    sub = _subscribe(publisher, env)
    await sub.request(-1)
    await sub.expect_error(ValueError)


@_optional("3.09", "requestNegativeNumberMaySignalIllegalArgumentExceptionWithSpecificMessage",
           elements=10)
async def _request_negative_message(env: TestEnvironment, publisher: Publisher[Any]) -> None:
    sub = _subscribe(publisher, env)
    await sub.request(-1)
    await sub.expect_error_with_message(
        ValueError, ["3.9", "non-positive subscription request", "n > 0"]
    )


@_required("3.12", "cancelMustMakeThePublisherToEventuallyStopSignaling", elements=20)
async def _cancel_stops_signaling(env: TestEnvironment, publisher: Publisher[Any]) -> None:
    sub = _subscribe(publisher, env)
    await sub.request(10)
    await sub.next_element()
    await sub.cancel()
    await sub.request(10)

    # Up to 9 already-requested elements may still be in flight.
    in_flight = 0
    while True:
        try:
            await sub.received.expect_next(
                "Expected in-flight element", env.default_poll_timeout_ms
            )
        except SignalTimeoutError:
            break
        in_flight += 1
        if in_flight > 9:
            raise ProtocolViolationError(
                f"Publisher {publisher!r} kept signalling after cancel: "
                f"received more elements than were requested before cancelling"
            )
    await sub.expect_none()


@_required("3.13", "cancelMustMakeThePublisherEventuallyDropAllReferencesToTheSubscriber",
           elements=3)
async def _cancel_drops_references(env: TestEnvironment, publisher: Publisher[Any]) -> None:
    sub = _subscribe(publisher, env)
    await sub.expect_subscription()
    await sub.cancel()
    ref = weakref.ref(sub)
    del sub

    loop = asyncio.get_running_loop()
    deadline = loop.time() + env.default_timeout_ms / 1000.0
    while True:
        gc.collect()
        if ref() is None:
            return
        if loop.time() >= deadline:
            break
        await asyncio.sleep(env.default_poll_timeout_ms / 1000.0)
    raise ProtocolViolationError(
        f"Publisher {publisher!r} did not drop its reference to the Subscriber "
        f"within {env.default_timeout_ms}ms after cancel"
    )


@_required("3.17", "mustSupportAPendingElementCountUpToLongMaxValue",
           elements=3, completion_required=True)
async def _pending_up_to_max(env: TestEnvironment, publisher: Publisher[Any]) -> None:
    sub = _subscribe(publisher, env)
    await sub.request(UNBOUNDED_DEMAND)
    await sub.next_elements(3)
    await sub.expect_completion()


@_required("3.17", "mustSupportACumulativePendingElementCountUpToLongMaxValue",
           elements=3, completion_required=True)
async def _cumulative_pending_up_to_max(env: TestEnvironment, publisher: Publisher[Any]) -> None:
    sub = _subscribe(publisher, env)
    await sub.request(UNBOUNDED_DEMAND // 2)
    await sub.request(UNBOUNDED_DEMAND // 2)
    await sub.request(1)
    await sub.next_elements(3)
    await sub.expect_completion()


class _OverflowingDemandSubscriber(ManualSubscriber[Any]):
    """Pushes pending demand past the sentinel from inside on_next, then cancels."""

    def __init__(self, env: TestEnvironment) -> None:
        super().__init__(env)
        self._calls = 0
        self._subscription_ref: Optional[Subscription] = None

    def on_subscribe(self, subscription: Subscription) -> None:
        if not self.is_subscribed:
            self._subscription_ref = subscription
        super().on_subscribe(subscription)

    def on_next(self, element: Any) -> None:
        super().on_next(element)
        self._calls += 1
        subscription = self._subscription_ref
        if subscription is None:
            return
        if self._calls < _OVERFLOW_CHECK_CALLS:
            self._issue_demand(subscription, UNBOUNDED_DEMAND - 1)
        elif self._calls == _OVERFLOW_CHECK_CALLS:
            subscription.cancel()


@_required("3.17", "mustNotSignalOnErrorWhenPendingAboveLongMaxValue", elements=2**31 - 1)
async def _no_error_above_max(env: TestEnvironment, publisher: Publisher[Any]) -> None:
    sub = _OverflowingDemandSubscriber(env)
    publisher.subscribe(sub)
    await sub.request(UNBOUNDED_DEMAND - 1)
    for _ in range(_OVERFLOW_CHECK_CALLS):
        await sub.next_element()
    # In-flight elements are tolerated; an error is not.
    while True:
        try:
            await sub.received.expect_next(
                "Expected in-flight element", env.default_poll_timeout_ms
            )
        except SignalTimeoutError:
            return


# ---------------------------------------------------------------------------
# Catalogued but not mechanically verifiable
# ---------------------------------------------------------------------------

PUBLISHER_RULES.untested("1.03", "mustSignalOnMethodsSequentially")
PUBLISHER_RULES.untested("1.06", "mustConsiderSubscriptionCancelledAfterOnErrorOrOnCompleteHasBeenCalled")
PUBLISHER_RULES.untested("1.07", "mustNotEmitFurtherSignalsOnceOnErrorHasBeenSignalled")
PUBLISHER_RULES.untested("1.08", "possiblyCanceledSubscriptionShouldNotReceiveOnErrorOrOnCompleteSignals")
PUBLISHER_RULES.untested("1.09", "subscribeShouldNotThrowNonFatalThrowable")
PUBLISHER_RULES.untested("1.10", "rejectASubscriptionRequestIfTheSameSubscriberSubscribesTwice")
PUBLISHER_RULES.untested("3.04", "requestShouldNotPerformHeavyComputations")
PUBLISHER_RULES.untested("3.05", "cancelMustNotSynchronouslyPerformHeavyComputation")


# ---------------------------------------------------------------------------
# Driver
# ---------------------------------------------------------------------------


def _unsatisfiable_reason(check: RuleCheck, provider: PublisherTestProvider[Any]) -> Optional[str]:
    if check.elements is None:
        return None
    max_elements = provider.max_elements_from_publisher()
    if max_elements < check.elements:
        return (
            f"Unable to run this test, as required elements nr: {check.elements} is higher "
            f"than supported by given producer: {max_elements}"
        )
    if check.completion_required and max_elements >= UNBOUNDED_DEMAND:
        return (
            "Unable to run this test, as it requires an on_complete signal, which this "
            "Publisher is unable to provide (as signalled by returning UNBOUNDED_DEMAND "
            "from max_elements_from_publisher())"
        )
    return None


def _matches_filter(check: RuleCheck, patterns: Sequence[str]) -> bool:
    return any(
        fnmatch.fnmatch(check.full_name, p) or fnmatch.fnmatch(check.name, p)
        for p in patterns
    )


async def _run_check(
    check: RuleCheck,
    provider: PublisherTestProvider[Any],
    env: TestEnvironment,
) -> CheckResult:
    def result(outcome: CheckOutcome, message: Optional[str] = None, duration_ms: float = 0.0) -> CheckResult:
        return CheckResult(
            rule_id=check.rule_id,
            name=check.name,
            outcome=outcome,
            duration_ms=duration_ms,
            message=message,
        )

    if check.status is RuleStatus.UNTESTED:
        return result(CheckOutcome.UNTESTED, "Rule cannot be verified mechanically")
    if check.fn is None:
        if check.status is RuleStatus.REQUIRED:
            return result(CheckOutcome.PENDING, "Required rule check is not implemented")
        return result(CheckOutcome.SKIPPED, "Optional rule check is not implemented")

    reason = _unsatisfiable_reason(check, provider)
    if reason is not None:
        logger.warning("%s: %s", check.full_name, reason)
        return result(CheckOutcome.SKIPPED, reason)

    logger.debug("Running %s", check.full_name)
    start = time.monotonic()
    outcome = CheckOutcome.PASSED
    message: Optional[str] = None
    try:
        if check.needs_failed_publisher:
            publisher = provider.create_failed_publisher()
            if publisher is None:
                raise CheckSkipped("Provider does not supply a failed Publisher")
        else:
            publisher = provider.create_publisher(check.elements if check.elements is not None else 0)
        await check.fn(env, publisher)
    except CheckSkipped as e:
        outcome = CheckOutcome.SKIPPED
        message = str(e)
    except AssertionError as e:
        outcome = CheckOutcome.FAILED
        message = str(e) if str(e) else "Assertion failed"
    except Exception as e:
        outcome = CheckOutcome.FAILED
        message = describe_error(e)
    elapsed_ms = (time.monotonic() - start) * 1000
    return result(outcome, message, elapsed_ms)


async def verify_publisher(
    provider: PublisherTestProvider[Any],
    env: Optional[TestEnvironment] = None,
    *,
    registry: RuleRegistry = PUBLISHER_RULES,
    filter_patterns: Optional[Sequence[str]] = None,
    on_progress: Optional[Callable[[CheckResult], None]] = None,
) -> VerificationReport:
    """Run every registered rule check against Publishers from ``provider``.

    Args:
        provider: Source of Publishers under test.
        env: Timeouts; defaults to ``TestEnvironment()``.
        registry: Catalog to run; defaults to the Publisher rules.
        filter_patterns: Optional glob patterns matched against check names.
        on_progress: Optional callback invoked after each check completes.

    Returns:
        A VerificationReport with one result per selected check.
    """
    if env is None:
        env = TestEnvironment()
    suite_start = time.monotonic()
    results: List[CheckResult] = []
    for check in registry:
        if filter_patterns and not _matches_filter(check, filter_patterns):
            continue
        result = await _run_check(check, provider, env)
        logger.info(
            "%s: %s%s",
            check.full_name,
            result.outcome.value,
            f" ({result.message})" if result.failed and result.message else "",
        )
        results.append(result)
        if on_progress is not None:
            on_progress(result)
    return VerificationReport(
        results=tuple(results),
        duration_ms=(time.monotonic() - suite_start) * 1000,
    )


def run_publisher_verification(
    provider: PublisherTestProvider[Any],
    env: Optional[TestEnvironment] = None,
    *,
    filter_patterns: Optional[Sequence[str]] = None,
    on_progress: Optional[Callable[[CheckResult], None]] = None,
) -> VerificationReport:
    """Synchronous wrapper around :func:`verify_publisher`."""
    return asyncio.run(
        verify_publisher(
            provider, env, filter_patterns=filter_patterns, on_progress=on_progress
        )
    )
