"""Feedback Stream — bounded, ordered buffer between decisions and the learning loop."""

import logging
import threading
from collections import deque
from typing import Iterable, List, Optional

from agf_kernel.models.events import FeedbackRecord

logger = logging.getLogger("agf_kernel.feedback")


class FeedbackStream:
    """
    Thread-safe FIFO of FeedbackRecords.

    When full, the oldest record is dropped to make room; drops are counted
    so they show up in metrics rather than disappearing.
    """

    def __init__(self, capacity: int = 5000):
        self.capacity = capacity
        self._records: deque = deque()
        self._lock = threading.Lock()
        self._dropped = 0

    def push(self, record: FeedbackRecord) -> None:
        with self._lock:
            if len(self._records) >= self.capacity:
                self._records.popleft()
                self._dropped += 1
                logger.warning("Feedback stream full (%d); dropped oldest record", self.capacity)
            self._records.append(record)

    def extend(self, records: Iterable[FeedbackRecord]) -> None:
        for record in records:
            self.push(record)

    def drain(self, max_items: Optional[int] = None) -> List[FeedbackRecord]:
        """Remove and return up to `max_items` records in arrival order."""
        with self._lock:
            count = len(self._records) if max_items is None else min(max_items, len(self._records))
            return [self._records.popleft() for _ in range(count)]

    def requeue(self, records: List[FeedbackRecord]) -> None:
        """Put an unprocessed batch back at the front, preserving its order."""
        with self._lock:
            for record in reversed(records):
                self._records.appendleft(record)
            while len(self._records) > self.capacity:
                self._records.pop()
                self._dropped += 1

    @property
    def dropped(self) -> int:
        return self._dropped

    def __len__(self) -> int:
        return len(self._records)
