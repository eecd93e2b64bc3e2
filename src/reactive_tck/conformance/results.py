"""Outcome records produced by a verification run."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple


class CheckOutcome(str, Enum):
    """Result of running (or declining to run) one rule check."""

    PASSED = "passed"
    FAILED = "failed"
    PENDING = "pending"
    SKIPPED = "skipped"
    UNTESTED = "untested"


@dataclass(frozen=True)
class CheckResult:
    """Result of a single rule check."""

    rule_id: str
    name: str
    outcome: CheckOutcome
    duration_ms: float = 0.0
    message: Optional[str] = None

    @property
    def failed(self) -> bool:
        """Pending required rules count as failures."""
        return self.outcome in (CheckOutcome.FAILED, CheckOutcome.PENDING)


@dataclass(frozen=True)
class VerificationReport:
    """Aggregate results of one verification run."""

    results: Tuple[CheckResult, ...]
    duration_ms: float

    def _count(self, outcome: CheckOutcome) -> int:
        return sum(1 for r in self.results if r.outcome is outcome)

    @property
    def passed(self) -> int:
        return self._count(CheckOutcome.PASSED)

    @property
    def failed(self) -> int:
        return self._count(CheckOutcome.FAILED)

    @property
    def pending(self) -> int:
        return self._count(CheckOutcome.PENDING)

    @property
    def skipped(self) -> int:
        return self._count(CheckOutcome.SKIPPED)

    @property
    def untested(self) -> int:
        return self._count(CheckOutcome.UNTESTED)

    @property
    def success(self) -> bool:
        """Whether no check failed and no required check is pending."""
        return self.failed == 0 and self.pending == 0

    def failures(self) -> Tuple[CheckResult, ...]:
        return tuple(r for r in self.results if r.failed)

    def result_for(self, name: str) -> CheckResult:
        for result in self.results:
            if result.name == name:
                return result
        raise KeyError(name)
