"""Conformance test suite for the stream contract.

Run: pytest --pyargs reactive_tck.conformance
"""
from reactive_tck.conformance.provider import (
    PublisherTestProvider,
    RangePublisherProvider,
)
from reactive_tck.conformance.publisher_verification import (
    PUBLISHER_RULES,
    run_publisher_verification,
    verify_publisher,
)
from reactive_tck.conformance.pytest_helpers import (
    assert_publisher_conforms,
    assert_rule_passes,
)
from reactive_tck.conformance.results import (
    CheckOutcome,
    CheckResult,
    VerificationReport,
)
from reactive_tck.conformance.rules import (
    RuleCheck,
    RuleRegistry,
    RuleStatus,
)

__all__ = [
    "CheckOutcome",
    "CheckResult",
    "PUBLISHER_RULES",
    "PublisherTestProvider",
    "RangePublisherProvider",
    "RuleCheck",
    "RuleRegistry",
    "RuleStatus",
    "VerificationReport",
    "assert_publisher_conforms",
    "assert_rule_passes",
    "run_publisher_verification",
    "verify_publisher",
]
