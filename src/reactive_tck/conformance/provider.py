"""Provider capability through which the driver obtains Publishers under test."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Generic, Optional, TypeVar

from reactive_tck.api import MAX_SUPPORTED_ELEMENTS, Publisher
from reactive_tck.range_publisher import RangePublisher

T = TypeVar("T")


class PublisherTestProvider(ABC, Generic[T]):
    """Supplies fresh Publisher instances to the verification suite.

    Implement :meth:`create_publisher`; override
    :meth:`max_elements_from_publisher` when the Publisher cannot produce
    arbitrarily long finite streams, and :meth:`create_failed_publisher` to
    enable the checks that need a Publisher which fails on subscribe.
    """

    __test__ = False  # not a pytest test class

    @abstractmethod
    def create_publisher(self, elements: int) -> Publisher[T]:
        """Return a Publisher that emits exactly ``elements`` items, then completes.

        ``UNBOUNDED_DEMAND`` asks for a stream that never completes.
        """

    def max_elements_from_publisher(self) -> int:
        """Largest stream length :meth:`create_publisher` supports.

        Return ``UNBOUNDED_DEMAND`` when the Publisher can never signal
        ``on_complete``; checks that need completion are then skipped.
        """
        return MAX_SUPPORTED_ELEMENTS

    def create_failed_publisher(self) -> Optional[Publisher[Any]]:
        """Return a Publisher that signals ``on_error`` after ``on_subscribe``, or ``None``."""
        return None


class RangePublisherProvider(PublisherTestProvider[int]):
    """Provider for the bundled reference :class:`~reactive_tck.range_publisher.RangePublisher`."""

    def __init__(self, start: int = 0) -> None:
        self.start = start

    def create_publisher(self, elements: int) -> Publisher[int]:
        return RangePublisher(self.start, self.start + elements)
