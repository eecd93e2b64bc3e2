"""Reusable test helpers for Publisher conformance testing.

Consumers can import these to verify their own Publishers:
    from reactive_tck.conformance.pytest_helpers import (
        assert_publisher_conforms,
        assert_rule_passes,
    )
"""
from __future__ import annotations

from typing import Any, Optional, Sequence

from reactive_tck.conformance.provider import PublisherTestProvider
from reactive_tck.conformance.publisher_verification import run_publisher_verification
from reactive_tck.conformance.results import CheckOutcome, VerificationReport
from reactive_tck.environment import TestEnvironment


def _format_failures(report: VerificationReport) -> str:
    lines = []
    for result in report.failures():
        lines.append(
            f"  {result.outcome.value.upper()} rule {result.rule_id} {result.name}: "
            f"{result.message}"
        )
    return "\n".join(lines)


def assert_publisher_conforms(
    provider: PublisherTestProvider[Any],
    env: Optional[TestEnvironment] = None,
    *,
    filter_patterns: Optional[Sequence[str]] = None,
) -> VerificationReport:
    """Assert every selected rule check passes (or is legitimately skipped)."""
    report = run_publisher_verification(provider, env, filter_patterns=filter_patterns)
    if not report.success:
        raise AssertionError(
            f"Publisher from {type(provider).__name__} failed conformance "
            f"({report.failed} failed, {report.pending} pending):\n"
            + _format_failures(report)
        )
    return report


def assert_rule_passes(
    provider: PublisherTestProvider[Any],
    name: str,
    env: Optional[TestEnvironment] = None,
) -> None:
    """Assert that the single rule check called ``name`` ran and passed."""
    report = run_publisher_verification(provider, env, filter_patterns=[name])
    result = report.result_for(name)
    assert result.outcome is CheckOutcome.PASSED, (
        f"Expected rule {result.rule_id} {name!r} to pass, "
        f"got {result.outcome.value}: {result.message}"
    )
