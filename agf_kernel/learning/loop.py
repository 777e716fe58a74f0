"""
Learning Loop — runs the Learning Adjuster on its own cadence.

Decoupled from request latency: decisions only push feedback; this loop
drains it in batches, adjusts against a freshly read base snapshot and
publishes the result.

Publish is serialized: one batch in flight at a time. A StaleVersionError
(someone published in between) triggers a re-read of the base and a retry.
"""

import asyncio
import logging
import threading
from datetime import datetime
from typing import Callable, Optional

from croniter import croniter

from agf_kernel.errors import StaleVersionError, ValidationError
from agf_kernel.learning.adjuster import LearningAdjuster
from agf_kernel.learning.feedback import FeedbackStream
from agf_kernel.models.config import LearningLoopConfig
from agf_kernel.models.learning import AdjustmentReport
from agf_kernel.policy.store import PolicyStore

logger = logging.getLogger("agf_kernel.learning")


class LearningLoop:
    """
    Batch trigger for the Learning Adjuster.

    States:
      IDLE → DRAINING → ADJUSTING → PUBLISHING → IDLE
    """

    def __init__(
        self,
        store: PolicyStore,
        adjuster: LearningAdjuster,
        feedback: FeedbackStream,
        config: Optional[LearningLoopConfig] = None,
        before_batch: Optional[Callable[[], object]] = None,
    ):
        self.store = store
        self.adjuster = adjuster
        self.feedback = feedback
        self.config = config or LearningLoopConfig()
        self._before_batch = before_batch
        self._batch_lock = threading.Lock()
        self._running = False
        self._last_report: Optional[AdjustmentReport] = None

        if self.config.schedule and not croniter.is_valid(self.config.schedule):
            raise ValidationError(f"Invalid learning schedule '{self.config.schedule}'")

    @property
    def status(self) -> str:
        return "running" if self._running else "stopped"

    @property
    def last_report(self) -> Optional[AdjustmentReport]:
        return self._last_report

    def run_once(self) -> Optional[AdjustmentReport]:
        """
        Run one adjustment batch.

        Returns the report, or None when there was no feedback to process.
        """
        with self._batch_lock:
            if self._before_batch is not None:
                self._before_batch()

            records = self.feedback.drain(self.config.batch_size)
            if not records:
                return None

            report: Optional[AdjustmentReport] = None
            attempts = 0
            while attempts <= self.config.max_retries:
                attempts += 1
                base = self.store.current_snapshot()
                snapshot, report = self.adjuster.adjust_with_report(records, base)
                report.attempts = attempts

                if not report.adjustments:
                    logger.debug("Feedback batch of %d caused no adjustment", len(records))
                    break

                try:
                    self.store.publish(snapshot)
                except StaleVersionError as e:
                    logger.warning(
                        "Stale base v%d on attempt %d (current v%d); re-reading",
                        base.version, attempts, e.current_version,
                    )
                    continue

                report.published = True
                break
            else:
                # Retries exhausted; keep the feedback for the next batch
                self.feedback.requeue(records)
                report.error = "stale_version_retries_exhausted"
                logger.error(
                    "Learning batch not published after %d attempts; %d records requeued",
                    attempts, len(records),
                )

            self._last_report = report
            return report

    def next_delay_seconds(self, now: Optional[datetime] = None) -> float:
        """Seconds until the next batch: cron schedule if set, else the fixed interval."""
        if not self.config.schedule:
            return self.config.interval_seconds
        if now is None:
            now = datetime.utcnow()
        next_fire = croniter(self.config.schedule, now).get_next(datetime)
        return max(0.0, (next_fire - now).total_seconds())

    async def run_async(self, stop_event: Optional[asyncio.Event] = None) -> None:
        """Run batches until `stop_event` is set."""
        self._running = True
        if stop_event is None:
            stop_event = asyncio.Event()

        try:
            while not stop_event.is_set():
                try:
                    await asyncio.wait_for(
                        stop_event.wait(),
                        timeout=self.next_delay_seconds(),
                    )
                except asyncio.TimeoutError:
                    await asyncio.to_thread(self.run_once)
        finally:
            self._running = False
