"""Property-based tests for demand accounting and queue ordering using Hypothesis."""
import asyncio
from typing import Any, List

from hypothesis import given, settings
from hypothesis import strategies as st

from reactive_tck import UNBOUNDED_DEMAND, AsyncQueue, RangePublisher, SignalKind
from conftest import RecordingSubscriber


demand = st.one_of(
    st.integers(min_value=1, max_value=20),
    st.just(UNBOUNDED_DEMAND),
    st.integers(min_value=UNBOUNDED_DEMAND - 5, max_value=UNBOUNDED_DEMAND * 4),
)


class TestRangePublisherDemand:
    """Emissions never exceed cumulative demand and completion is signalled once."""

    @settings(max_examples=200, deadline=None)
    @given(
        start=st.integers(min_value=-1000, max_value=1000),
        length=st.integers(min_value=0, max_value=50),
        requests=st.lists(demand, max_size=10),
    )
    def test_emits_prefix_bounded_by_demand(self, start: int, length: int, requests: List[int]) -> None:
        sub = RecordingSubscriber()
        RangePublisher(start, start + length).subscribe(sub)

        total = 0
        for n in requests:
            sub.request(n)
            total += n
            expected = list(range(start, start + min(total, length)))
            assert sub.values == expected

        completions = [s for s in sub.signals if s.kind is SignalKind.COMPLETE]
        if length == 0 or total >= length:
            assert len(completions) == 1
            assert sub.signals[-1].kind is SignalKind.COMPLETE
        else:
            assert completions == []
        assert not any(s.kind is SignalKind.FAULT for s in sub.signals)

    @settings(max_examples=100, deadline=None)
    @given(
        length=st.integers(min_value=1, max_value=200),
        reentrant=st.lists(st.integers(min_value=0, max_value=3), min_size=1, max_size=20),
    )
    def test_reentrant_requests_keep_order(self, length: int, reentrant: List[int]) -> None:
        def hook(s: RecordingSubscriber, element: Any) -> None:
            n = reentrant[element % len(reentrant)]
            if n:
                s.request(n)

        sub = RecordingSubscriber(on_next_hook=hook)
        RangePublisher(0, length).subscribe(sub)
        sub.request(1)
        sub.request(length)

        assert sub.values == list(range(length))
        assert [s.kind for s in sub.signals].count(SignalKind.COMPLETE) == 1

    @settings(max_examples=100, deadline=None)
    @given(
        length=st.integers(min_value=1, max_value=30),
        cancel_at=st.integers(min_value=0, max_value=29),
    )
    def test_nothing_after_cancel(self, length: int, cancel_at: int) -> None:
        def hook(s: RecordingSubscriber, element: Any) -> None:
            if element == cancel_at:
                s.subscription.cancel()  # type: ignore[union-attr]

        sub = RecordingSubscriber(on_next_hook=hook)
        RangePublisher(0, length).subscribe(sub)
        sub.request(UNBOUNDED_DEMAND)
        sub.request(5)

        assert sub.values == list(range(min(cancel_at + 1, length)))


operations = st.lists(st.sampled_from(["push", "poll", "take", "cancel"]), max_size=40)


async def _run_queue_scenario(ops: List[str]) -> List[int]:
    queue: AsyncQueue[int] = AsyncQueue()
    pushed: List[int] = []
    taken: List[int] = []
    pending = None
    for op in ops:
        if op == "push":
            queue.push(len(pushed))
            pushed.append(len(pushed))
        elif op == "poll" and pending is None:
            pending = queue.poll()
        elif op == "take" and pending is not None and pending.done():
            taken.append(pending.take())
            pending = None
        elif op == "cancel" and pending is not None:
            pending.cancel()
            pending = None
    if pending is not None:
        pending.cancel()
    while not queue.is_empty():
        taken.append(await queue.poll())
    assert taken == pushed
    return taken


class TestAsyncQueueOrdering:
    """Cancelled polls never lose or reorder values."""

    @settings(max_examples=200, deadline=None)
    @given(operations)
    def test_fifo_survives_cancellation(self, ops: List[str]) -> None:
        asyncio.run(_run_queue_scenario(ops))
