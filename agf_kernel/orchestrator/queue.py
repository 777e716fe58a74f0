"""
Event Queue — bounded, priority-ordered buffer of GovernanceEvents.

critical before high before medium before low; FIFO within a tier.
A full queue rejects immediately with QueueFullError and is left unchanged;
callers are never blocked.
"""

import heapq
import itertools
import threading
from typing import List, Optional, Tuple

from agf_kernel.errors import QueueFullError
from agf_kernel.models.events import GovernanceEvent


class EventQueue:
    def __init__(self, capacity: int = 1000):
        self.capacity = capacity
        self._heap: List[Tuple[int, int, GovernanceEvent]] = []
        self._sequence = itertools.count()
        self._lock = threading.Lock()

    def put_nowait(self, event: GovernanceEvent) -> None:
        with self._lock:
            if len(self._heap) >= self.capacity:
                raise QueueFullError(self.capacity)
            heapq.heappush(self._heap, (event.priority.rank, next(self._sequence), event))

    def get_nowait(self) -> Optional[GovernanceEvent]:
        """Highest-priority event, or None when empty."""
        with self._lock:
            if not self._heap:
                return None
            return heapq.heappop(self._heap)[2]

    def drain(self, max_items: Optional[int] = None) -> List[GovernanceEvent]:
        """Remove and return events in scheduling order."""
        with self._lock:
            count = len(self._heap) if max_items is None else min(max_items, len(self._heap))
            return [heapq.heappop(self._heap)[2] for _ in range(count)]

    def peek_all(self) -> List[GovernanceEvent]:
        """Events in scheduling order, without removing them."""
        with self._lock:
            return [entry[2] for entry in sorted(self._heap)]

    @property
    def is_full(self) -> bool:
        return len(self._heap) >= self.capacity

    def __len__(self) -> int:
        return len(self._heap)
