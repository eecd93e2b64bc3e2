"""Rule catalog: conformance checks registered against rule identifiers."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Iterator, List, Optional

from reactive_tck.environment import TestEnvironment

CheckFn = Callable[[TestEnvironment, Any], Awaitable[None]]


class RuleStatus(str, Enum):
    """How a rule participates in a verification run."""

    REQUIRED = "required"
    OPTIONAL = "optional"
    UNTESTED = "untested"


@dataclass(frozen=True)
class RuleCheck:
    """A single catalogued rule and, if implemented, the check verifying it.

    ``elements`` is the stream length requested from the provider (``None``
    means the check does not depend on a finite stream). When
    ``completion_required`` is set, the provider must be able to terminate
    the stream with ``on_complete``.
    """

    rule_id: str
    name: str
    status: RuleStatus
    fn: Optional[CheckFn] = None
    elements: Optional[int] = None
    completion_required: bool = False
    needs_failed_publisher: bool = False

    @property
    def full_name(self) -> str:
        return f"{self.status.value}_rule{self.rule_id.replace('.', '')}_{self.name}"

    @property
    def implemented(self) -> bool:
        return self.fn is not None


class RuleRegistry:
    """Ordered collection of :class:`RuleCheck` entries."""

    def __init__(self) -> None:
        self._checks: List[RuleCheck] = []

    def __iter__(self) -> Iterator[RuleCheck]:
        return iter(self._checks)

    def __len__(self) -> int:
        return len(self._checks)

    def add(self, check: RuleCheck) -> RuleCheck:
        for existing in self._checks:
            if existing.full_name == check.full_name:
                raise ValueError(f"Duplicate rule check: {check.full_name!r}")
        self._checks.append(check)
        return check

    def required(
        self,
        rule_id: str,
        name: str,
        *,
        elements: Optional[int] = None,
        completion_required: bool = False,
        needs_failed_publisher: bool = False,
    ) -> Callable[[CheckFn], CheckFn]:
        return self._decorator(
            RuleStatus.REQUIRED, rule_id, name, elements,
            completion_required, needs_failed_publisher,
        )

    def optional(
        self,
        rule_id: str,
        name: str,
        *,
        elements: Optional[int] = None,
        completion_required: bool = False,
        needs_failed_publisher: bool = False,
    ) -> Callable[[CheckFn], CheckFn]:
        return self._decorator(
            RuleStatus.OPTIONAL, rule_id, name, elements,
            completion_required, needs_failed_publisher,
        )

    def untested(self, rule_id: str, name: str) -> RuleCheck:
        """Catalogue a rule that cannot be verified mechanically."""
        return self.add(RuleCheck(rule_id=rule_id, name=name, status=RuleStatus.UNTESTED))

    def pending(self, status: RuleStatus, rule_id: str, name: str) -> RuleCheck:
        """Catalogue a rule whose check has not been written yet."""
        return self.add(RuleCheck(rule_id=rule_id, name=name, status=status))

    def _decorator(
        self,
        status: RuleStatus,
        rule_id: str,
        name: str,
        elements: Optional[int],
        completion_required: bool,
        needs_failed_publisher: bool,
    ) -> Callable[[CheckFn], CheckFn]:
        def decorator(fn: CheckFn) -> CheckFn:
            self.add(
                RuleCheck(
                    rule_id=rule_id,
                    name=name,
                    status=status,
                    fn=fn,
                    elements=elements,
                    completion_required=completion_required,
                    needs_failed_publisher=needs_failed_publisher,
                )
            )
            return fn

        return decorator
