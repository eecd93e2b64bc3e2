"""Stream contract roles: Publisher, Subscriber, Subscription, Processor.

These are structural protocols only. Any object with the right methods
conforms, which is what lets the toolkit exercise third-party implementations.
"""

from typing import Protocol, TypeVar, runtime_checkable

T_contra = TypeVar("T_contra", contravariant=True)
R_co = TypeVar("R_co", covariant=True)

# Demand value meaning "effectively unbounded".
UNBOUNDED_DEMAND: int = 2**63 - 1

# Largest finite stream a provider may advertise; UNBOUNDED_DEMAND is reserved.
MAX_SUPPORTED_ELEMENTS: int = UNBOUNDED_DEMAND - 1


@runtime_checkable
class Subscription(Protocol):
    """One-to-one lifecycle of a Subscriber subscribing to a Publisher."""

    def request(self, n: int) -> None:
        """Add ``n`` to the outstanding demand. ``n`` must be positive."""
        ...

    def cancel(self) -> None:
        """Ask the Publisher to stop sending data and release resources."""
        ...


@runtime_checkable
class Subscriber(Protocol[T_contra]):
    """Receiver of signals from a Publisher."""

    def on_subscribe(self, subscription: Subscription) -> None: ...

    def on_next(self, element: T_contra) -> None: ...

    def on_error(self, error: BaseException) -> None: ...

    def on_complete(self) -> None: ...


@runtime_checkable
class Publisher(Protocol[R_co]):
    """Provider of a potentially unbounded number of sequenced elements."""

    def subscribe(self, subscriber: "Subscriber[R_co]") -> None: ...


@runtime_checkable
class Processor(Subscriber[T_contra], Publisher[R_co], Protocol[T_contra, R_co]):
    """A processing stage that is both a Subscriber and a Publisher."""
