"""
reactive-tck: Conformance toolkit for the asynchronous backpressure stream contract.

This library provides an asyncio signal-capture engine for observing what a
Subscriber receives, demand-driven test Subscribers built on it, a reference
Publisher with overflow-safe demand accounting, and a rule-driven driver that
verifies third-party Publishers against the contract.

Example:
    >>> import asyncio
    >>> from reactive_tck import ManualSubscriber, RangePublisher
    >>> async def first_two():
    ...     sub = ManualSubscriber()
    ...     RangePublisher(0, 5).subscribe(sub)
    ...     return await sub.request_next_elements(2)
    >>> asyncio.run(first_two())
    [0, 1]

Versioning and Export Notes (0.3.0 -- Publisher Rule Catalog):
    The conformance driver now implements the 1.x and 3.x Publisher rules
    that can be checked mechanically; the rest are catalogued as untested
    and reported without affecting pass/fail totals.

    Verifying a Publisher:
        - Subclass ``PublisherTestProvider`` and implement
          ``create_publisher(elements)``.
        - Call ``assert_publisher_conforms(provider)`` from a test, or
          ``run_publisher_verification(provider)`` for the raw report.
        - Timeouts come from ``TestEnvironment`` (see
          ``TestEnvironment.from_env`` for the REACTIVE_TCK_* variables).
"""

__version__ = "0.3.0"

# Stream contract
from reactive_tck.api import (
    MAX_SUPPORTED_ELEMENTS,
    UNBOUNDED_DEMAND,
    Processor,
    Publisher,
    Subscriber,
    Subscription,
)

# Signals and errors
from reactive_tck.models import (
    CheckSkipped,
    ExpectationError,
    IllegalDemandError,
    IllegalUsageError,
    InsufficientElementsError,
    ProtocolViolationError,
    ReactiveTckError,
    Signal,
    SignalKind,
    SignalTimeoutError,
    UnknownSignalError,
)

# Configuration
from reactive_tck.environment import TestEnvironment

# Signal capture
from reactive_tck.signal_queue import AsyncQueue, PendingPoll, QueueState
from reactive_tck.receptacle import Receptacle

# Test subscribers
from reactive_tck.subscriber import ManualSubscriber, TestSubscriber

# Reference publisher
from reactive_tck.range_publisher import RangePublisher, RangeSubscription

# Conformance driver
from reactive_tck.conformance import (
    CheckOutcome,
    CheckResult,
    PublisherTestProvider,
    RangePublisherProvider,
    RuleStatus,
    VerificationReport,
    assert_publisher_conforms,
    run_publisher_verification,
    verify_publisher,
)

__all__ = [
    "__version__",
    # Stream contract
    "MAX_SUPPORTED_ELEMENTS",
    "UNBOUNDED_DEMAND",
    "Processor",
    "Publisher",
    "Subscriber",
    "Subscription",
    # Signals and errors
    "CheckSkipped",
    "ExpectationError",
    "IllegalDemandError",
    "IllegalUsageError",
    "InsufficientElementsError",
    "ProtocolViolationError",
    "ReactiveTckError",
    "Signal",
    "SignalKind",
    "SignalTimeoutError",
    "UnknownSignalError",
    # Configuration
    "TestEnvironment",
    # Signal capture
    "AsyncQueue",
    "PendingPoll",
    "QueueState",
    "Receptacle",
    # Test subscribers
    "ManualSubscriber",
    "TestSubscriber",
    # Reference publisher
    "RangePublisher",
    "RangeSubscription",
    # Conformance driver
    "CheckOutcome",
    "CheckResult",
    "PublisherTestProvider",
    "RangePublisherProvider",
    "RuleStatus",
    "VerificationReport",
    "assert_publisher_conforms",
    "run_publisher_verification",
    "verify_publisher",
]
