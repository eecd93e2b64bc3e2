"""Core data models for reactive-tck: the signal variant and library errors."""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, Optional, Sequence, TypeVar

T = TypeVar("T")


class SignalKind(str, Enum):
    """Tag of a signal observed on a Subscriber."""

    VALUE = "value"
    FAULT = "fault"
    COMPLETE = "complete"


@dataclass(frozen=True)
class Signal(Generic[T]):
    """One notification delivered to a Subscriber.

    Exactly one of ``value`` / ``error`` is meaningful, selected by ``kind``.
    Build instances through the ``of_*`` constructors rather than directly.
    """

    kind: SignalKind
    value: Optional[T] = None
    error: Optional[BaseException] = None

    @classmethod
    def of_value(cls, value: T) -> "Signal[T]":
        return cls(kind=SignalKind.VALUE, value=value)

    @classmethod
    def of_fault(cls, error: BaseException) -> "Signal[T]":
        return cls(kind=SignalKind.FAULT, error=error)

    @classmethod
    def of_complete(cls) -> "Signal[T]":
        return cls(kind=SignalKind.COMPLETE)

    def describe(self) -> str:
        """Human-readable form used in failure messages."""
        if self.kind is SignalKind.VALUE:
            return f"next [{self.value!r}]"
        if self.kind is SignalKind.FAULT:
            return f"error [{describe_error(self.error)}]"
        if self.kind is SignalKind.COMPLETE:
            return "completion"
        raise UnknownSignalError(self)


def describe_error(error: Optional[BaseException]) -> str:
    """Render an exception as ``TypeName: message``."""
    if error is None:
        return "None"
    text = str(error)
    if not text:
        return type(error).__name__
    return f"{type(error).__name__}: {text}"


# Custom Exceptions
class ReactiveTckError(Exception):
    """Base exception for all library errors."""
    pass


class UnknownSignalError(ReactiveTckError):
    """A signal carried a kind no consumer knows how to handle."""

    def __init__(self, signal: Any) -> None:
        self.signal = signal
        super().__init__(f"Unknown signal kind: {signal!r}")


class ExpectationError(ReactiveTckError, AssertionError):
    """An expectation about the observed signals did not hold."""
    pass


class SignalTimeoutError(ExpectationError):
    """No qualifying signal arrived within the allotted time."""

    def __init__(self, message: str, timeout_ms: float) -> None:
        self.timeout_ms = timeout_ms
        super().__init__(f"{message} within {_format_ms(timeout_ms)}ms but timed out")


class ProtocolViolationError(ExpectationError):
    """A component broke a rule of the stream contract."""
    pass


class InsufficientElementsError(ExpectationError):
    """The stream terminated before the requested number of elements arrived."""

    def __init__(
        self,
        message: str,
        expected: int,
        received: Sequence[Any],
        cause: "Signal[Any]",
    ) -> None:
        self.expected = expected
        self.received = tuple(received)
        self.cause = cause
        super().__init__(
            f"{message} but got {cause.describe()} after "
            f"{len(self.received)} of {expected} elements"
        )


class IllegalUsageError(ExpectationError):
    """The toolkit itself was driven incorrectly (e.g. two concurrent polls)."""
    pass


class IllegalDemandError(ReactiveTckError, ValueError):
    """Non-positive demand was passed to ``Subscription.request``."""
    pass


class CheckSkipped(ReactiveTckError):
    """Raised inside a conformance check to mark it as not applicable."""
    pass


def _format_ms(timeout_ms: float) -> str:
    if float(timeout_ms).is_integer():
        return str(int(timeout_ms))
    return str(timeout_ms)
