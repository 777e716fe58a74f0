"""Tests for the priority Event Queue."""

from datetime import datetime

import pytest

from agf_kernel.errors import QueueFullError
from agf_kernel.models.events import EventPriority, GovernanceEvent
from agf_kernel.orchestrator.queue import EventQueue


def _make_event(event_id: str, priority: EventPriority = EventPriority.MEDIUM) -> GovernanceEvent:
    return GovernanceEvent(
        id=event_id,
        type="override",
        source="test",
        priority=priority,
        timestamp=datetime.utcnow(),
    )


class TestEventQueue:
    def setup_method(self):
        self.queue = EventQueue(capacity=10)

    def test_priority_order(self):
        self.queue.put_nowait(_make_event("low", EventPriority.LOW))
        self.queue.put_nowait(_make_event("medium", EventPriority.MEDIUM))
        self.queue.put_nowait(_make_event("critical", EventPriority.CRITICAL))
        self.queue.put_nowait(_make_event("high", EventPriority.HIGH))

        assert [e.id for e in self.queue.drain()] == ["critical", "high", "medium", "low"]

    def test_fifo_within_tier(self):
        for i in range(5):
            self.queue.put_nowait(_make_event(f"evt_{i}", EventPriority.HIGH))
        self.queue.put_nowait(_make_event("urgent", EventPriority.CRITICAL))

        order = [self.queue.get_nowait().id for _ in range(6)]
        assert order == ["urgent", "evt_0", "evt_1", "evt_2", "evt_3", "evt_4"]

    def test_full_queue_rejects_without_mutation(self):
        queue = EventQueue(capacity=2)
        queue.put_nowait(_make_event("a"))
        queue.put_nowait(_make_event("b"))
        before = [e.id for e in queue.peek_all()]

        with pytest.raises(QueueFullError) as exc:
            queue.put_nowait(_make_event("c", EventPriority.CRITICAL))

        assert exc.value.capacity == 2
        assert queue.is_full
        assert len(queue) == 2
        assert [e.id for e in queue.peek_all()] == before

    def test_empty_queue(self):
        assert self.queue.get_nowait() is None
        assert self.queue.drain() == []

    def test_drain_with_limit(self):
        for i in range(4):
            self.queue.put_nowait(_make_event(f"evt_{i}"))
        assert [e.id for e in self.queue.drain(max_items=3)] == ["evt_0", "evt_1", "evt_2"]
        assert len(self.queue) == 1
