"""
Governance Orchestrator — the coordinator of the decision pipeline.

Owns one instance of each collaborator (context analyzer, policy store,
evaluator, learning loop, audit sink, metrics sink, event queue, feedback
stream), all handed in or built at construction. Lifecycle is explicit:
initialize() before use, shutdown() when done.

Per-request state machine:
  RECEIVED → CONTEXT_RESOLVED → POLICY_EVALUATED → DECIDED → RECORDED

Behavioral Contract:
- make_decision() before initialize() raises NotInitializedError
- Context analysis is advisory: a failure downgrades to an empty posture bundle
- The policy snapshot is read once per request and used for the whole evaluation
- Once DECIDED, a decision is never retracted; recording failures are logged,
  counted and queued for retry, and the decision is still returned
- emit_event() never blocks: a full queue raises QueueFullError immediately
"""

import asyncio
import logging
import threading
import time
from collections import deque
from datetime import datetime
from typing import Any, Dict, List, Optional, Set, Tuple, Union
from uuid import uuid4

from pydantic import ValidationError as PydanticValidationError

from agf_kernel.audit.store import AuditSink, AuditStore
from agf_kernel.context.analyzer import ContextAnalyzer
from agf_kernel.errors import (
    NotInitializedError,
    QueueFullError,
    RecordingError,
    ValidationError,
)
from agf_kernel.learning.adjuster import LearningAdjuster
from agf_kernel.learning.feedback import FeedbackStream
from agf_kernel.learning.loop import LearningLoop
from agf_kernel.metrics.collector import MetricsCollector, MetricsSink
from agf_kernel.models.config import OrchestratorConfig
from agf_kernel.models.context import DecisionRequest, PostureBundle
from agf_kernel.models.decision import DecisionKind, DecisionState, GovernanceDecision
from agf_kernel.models.events import FeedbackRecord, GovernanceEvent
from agf_kernel.models.learning import AdjustmentReport
from agf_kernel.models.metrics import MetricsSnapshot
from agf_kernel.models.policy import PolicySnapshot
from agf_kernel.orchestrator.queue import EventQueue
from agf_kernel.policy.evaluator import PolicyEvaluator
from agf_kernel.policy.store import PolicyStore

logger = logging.getLogger("agf_kernel.orchestrator")


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def derive_feedback(
    decision: GovernanceDecision,
    snapshot: PolicySnapshot,
) -> List[FeedbackRecord]:
    """One record per evaluated policy that opted into learning via feedback_kind."""
    records = []
    for entry in decision.reasoning:
        if not entry.policy_id or not _is_number(entry.observed):
            continue
        policy = snapshot.get(entry.policy_id)
        if policy is None or not policy.feedback_kind:
            continue
        records.append(FeedbackRecord(
            policy_id=policy.id,
            kind=policy.feedback_kind,
            observed_value=entry.observed,
            expected_value=entry.expected if _is_number(entry.expected) else None,
            timestamp=decision.timestamp,
            source="decision",
        ))
    return records


class GovernanceOrchestrator:
    """
    Accepts decision requests, runs them through the pipeline, records the
    outcome, and feeds it back to the learning loop.
    """

    def __init__(
        self,
        config: Optional[OrchestratorConfig] = None,
        context_analyzer: Optional[ContextAnalyzer] = None,
        policy_store: Optional[PolicyStore] = None,
        evaluator: Optional[PolicyEvaluator] = None,
        adjuster: Optional[LearningAdjuster] = None,
        audit_sink: Optional[AuditSink] = None,
        metrics: Optional[MetricsSink] = None,
        feedback: Optional[FeedbackStream] = None,
        event_queue: Optional[EventQueue] = None,
    ):
        self.config = config or OrchestratorConfig()
        self.context_analyzer = context_analyzer or ContextAnalyzer()
        self.policy_store = policy_store or PolicyStore(history_size=self.config.history_size)
        self.evaluator = evaluator or PolicyEvaluator(self.config.evaluator)
        self.adjuster = adjuster or LearningAdjuster(self.config.adjuster)
        self.metrics = metrics if metrics is not None else MetricsCollector()
        self.feedback = feedback or FeedbackStream(self.config.feedback_capacity)
        self.event_queue = event_queue or EventQueue(self.config.event_queue_capacity)

        self._owns_audit = audit_sink is None
        self.audit: AuditSink = audit_sink if audit_sink is not None else AuditStore(self.config.audit_db_path)

        self.learning_loop = LearningLoop(
            store=self.policy_store,
            adjuster=self.adjuster,
            feedback=self.feedback,
            config=self.config.learning,
            before_batch=self.process_events,
        )

        self._initialized = False
        self._lifecycle_lock = threading.Lock()
        self._counters_lock = threading.Lock()
        self._counters: Dict[str, float] = {}
        self._decisions_by_kind: Dict[str, int] = {k.value: 0 for k in DecisionKind}
        self._retry_queue: deque = deque()
        self._retry_lock = threading.Lock()
        self._subscribed = False
        self._pending: Set[asyncio.Future] = set()

    # --- Lifecycle ---

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    def initialize(self) -> None:
        """Bring the orchestrator online. Idempotent."""
        with self._lifecycle_lock:
            if self._initialized:
                return
            logger.info("Initializing governance orchestrator")
            if not self._subscribed:
                self.policy_store.subscribe(self._on_snapshot_published)
                self._subscribed = True
            self._set_gauge("policy_snapshot_version", self.policy_store.version)
            self._initialized = True
            logger.info(
                "Governance orchestrator ready (snapshot v%d, %d policies)",
                self.policy_store.version,
                len(self.policy_store.current_snapshot().policies),
            )

    def shutdown(self) -> None:
        """Stop accepting requests and release owned resources."""
        with self._lifecycle_lock:
            if not self._initialized:
                return
            logger.info("Shutting down governance orchestrator")
            self._initialized = False
            if self._retry_queue:
                logger.warning(
                    "Shutdown with %d unrecorded audit entries in retry queue",
                    len(self._retry_queue),
                )
            if self._owns_audit and isinstance(self.audit, AuditStore):
                self.audit.close()

    def _require_initialized(self) -> None:
        if not self._initialized:
            raise NotInitializedError("Governance orchestrator used before initialize()")

    # --- Decisions ---

    def make_decision(self, request: Union[DecisionRequest, dict]) -> GovernanceDecision:
        """Run one request through the full pipeline and return its decision."""
        decision, snapshot, started = self._decide(request)
        self._record(decision, snapshot, started)
        return decision

    async def make_decision_async(self, request: Union[DecisionRequest, dict]) -> GovernanceDecision:
        """
        Async variant. The pipeline runs on a worker thread and is shielded,
        so a caller timeout after DECIDED still lets RECORDED complete.
        """
        self._require_initialized()
        loop = asyncio.get_running_loop()
        future = loop.run_in_executor(None, self.make_decision, request)
        self._pending.add(future)
        future.add_done_callback(self._forget_pending)
        return await asyncio.shield(future)

    async def drain(self) -> None:
        """Wait for every in-flight async decision, including cancelled callers'."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def _forget_pending(self, future: asyncio.Future) -> None:
        self._pending.discard(future)
        if not future.cancelled() and future.exception() is not None:
            logger.debug("Async decision failed: %s", future.exception())

    def _decide(
        self, raw_request: Union[DecisionRequest, dict]
    ) -> Tuple[GovernanceDecision, PolicySnapshot, float]:
        self._require_initialized()
        request = self._validate_request(raw_request)

        started = time.perf_counter()
        request_id = f"req_{uuid4().hex[:12]}"
        self._inc("total_requests")
        self._transition(request_id, DecisionState.RECEIVED, request.resource, request.action)

        posture = self._resolve_context(request, request_id)
        self._transition(request_id, DecisionState.CONTEXT_RESOLVED, posture.profile or "none")

        # Captured once; a concurrent publish does not affect this request
        snapshot = self.policy_store.current_snapshot()
        decision = self.evaluator.evaluate(request, posture, snapshot, request_id=request_id)
        self._transition(request_id, DecisionState.POLICY_EVALUATED, f"v{snapshot.version}")

        self._transition(request_id, DecisionState.DECIDED, decision.decision.value)
        logger.info(
            "Decision %s for %s/%s: %s (confidence %.2f, snapshot v%d)",
            decision.id,
            request.resource,
            request.action,
            decision.decision.value,
            decision.confidence,
            snapshot.version,
        )
        return decision, snapshot, started

    def _validate_request(self, raw: Union[DecisionRequest, dict]) -> DecisionRequest:
        if isinstance(raw, DecisionRequest):
            return raw
        if not isinstance(raw, dict):
            raise ValidationError(f"Decision request must be a mapping, got {type(raw).__name__}")
        try:
            return DecisionRequest.model_validate(raw)
        except PydanticValidationError as e:
            raise ValidationError(f"Malformed decision request: {e}") from e

    def _resolve_context(self, request: DecisionRequest, request_id: str) -> PostureBundle:
        try:
            return self.context_analyzer.analyze(request.context)
        except Exception:
            logger.warning(
                "Context analysis failed for %s; continuing with empty posture",
                request_id,
                exc_info=True,
            )
            self._inc("context_errors")
            return PostureBundle()

    def _transition(self, request_id: str, state: DecisionState, *detail: str) -> None:
        logger.debug("%s -> %s %s", request_id, state.value, " ".join(detail))

    # --- Recording ---

    def _record(
        self,
        decision: GovernanceDecision,
        snapshot: PolicySnapshot,
        started: float,
    ) -> None:
        latency_ms = (time.perf_counter() - started) * 1000.0
        with self._counters_lock:
            self._decisions_by_kind[decision.decision.value] += 1
            self._counters["total_decisions"] = self._counters.get("total_decisions", 0) + 1
            self._counters["latency_sum_ms"] = self._counters.get("latency_sum_ms", 0.0) + latency_ms

        try:
            self.metrics.inc_counter("decisions_total", kind=decision.decision.value)
            self.metrics.observe("decision_latency_ms", latency_ms)
        except Exception as e:
            self._recording_failed(RecordingError("metrics", decision.id, e))

        try:
            self.audit.record(decision, decision.snapshot_version)
        except Exception as e:
            self._queue_for_retry(decision, decision.snapshot_version)
            self._recording_failed(RecordingError("audit", decision.id, e))

        self.feedback.extend(derive_feedback(decision, snapshot))
        self._transition(decision.request_id, DecisionState.RECORDED, decision.id)

    def _recording_failed(self, error: RecordingError) -> None:
        logger.error("%s", error)
        self._inc("errors")
        self._inc("recording_errors")
        try:
            self.metrics.inc_counter("errors_total", sink=error.sink)
        except Exception:
            logger.error("Metrics sink unavailable; error count kept locally only")

    def _queue_for_retry(self, decision: GovernanceDecision, version: int) -> None:
        """Bounded; on overflow the oldest entry is lost, logged and counted."""
        with self._retry_lock:
            lost = None
            if len(self._retry_queue) >= self.config.retry_queue_capacity:
                lost, _ = self._retry_queue.popleft()
            self._retry_queue.append((decision, version))

        if lost is not None:
            logger.error(
                "Audit retry queue full (%d); decision %s will never be recorded",
                self.config.retry_queue_capacity,
                lost.id,
            )
            self._inc("audit_entries_lost")
            try:
                self.metrics.inc_counter("audit_entries_lost_total")
            except Exception:
                logger.error("Metrics sink unavailable while counting lost audit entry")

    def retry_failed_recordings(self) -> int:
        """Re-send queued audit writes. Returns how many succeeded."""
        succeeded = 0
        with self._retry_lock:
            for _ in range(len(self._retry_queue)):
                decision, version = self._retry_queue.popleft()
                try:
                    self.audit.record(decision, version)
                except Exception as e:
                    self._retry_queue.appendleft((decision, version))
                    logger.warning("Audit retry failed for %s: %s", decision.id, e)
                    break
                succeeded += 1
        if succeeded:
            logger.info("Recovered %d audit entries from retry queue", succeeded)
        return succeeded

    # --- Events & feedback ---

    def emit_event(self, event: Union[GovernanceEvent, dict]) -> GovernanceEvent:
        """Validate and enqueue an event for asynchronous processing."""
        self._require_initialized()
        governance_event = self._validate_event(event)
        try:
            self.event_queue.put_nowait(governance_event)
        except QueueFullError:
            self._inc("events_dropped")
            try:
                self.metrics.inc_counter("events_dropped_total")
            except Exception:
                logger.error("Metrics sink unavailable while counting dropped event")
            logger.warning(
                "Event %s (%s) rejected: queue full", governance_event.id, governance_event.type
            )
            raise
        self._inc("events_enqueued")
        logger.debug(
            "Event %s enqueued (type=%s, source=%s, priority=%s)",
            governance_event.id,
            governance_event.type,
            governance_event.source,
            governance_event.priority.value,
        )
        return governance_event

    def _validate_event(self, event: Union[GovernanceEvent, dict]) -> GovernanceEvent:
        if isinstance(event, dict):
            payload = dict(event)
            payload.setdefault("id", f"evt_{uuid4().hex[:12]}")
            payload.setdefault("timestamp", datetime.utcnow())
            try:
                event = GovernanceEvent.model_validate(payload)
            except PydanticValidationError as e:
                raise ValidationError(f"Malformed governance event: {e}") from e
        elif not isinstance(event, GovernanceEvent):
            raise ValidationError(f"Event must be a mapping, got {type(event).__name__}")

        if event.carries_feedback:
            self._feedback_from_event(event)
        return event

    def _feedback_from_event(self, event: GovernanceEvent) -> FeedbackRecord:
        payload = {"source": event.source, "timestamp": event.timestamp, **event.data}
        try:
            return FeedbackRecord.model_validate(payload)
        except PydanticValidationError as e:
            raise ValidationError(
                f"Event {event.id} of type '{event.type}' does not carry a valid feedback record: {e}"
            ) from e

    def process_events(self, max_items: Optional[int] = None) -> int:
        """Drain queued events; feedback-carrying events go to the feedback stream."""
        events = self.event_queue.drain(max_items)
        for event in events:
            if event.carries_feedback:
                self.feedback.push(self._feedback_from_event(event))
            else:
                logger.debug("Event %s (%s) has no learning payload", event.id, event.type)
        if events:
            self._inc("events_processed", len(events))
        return len(events)

    def submit_feedback(self, record: FeedbackRecord) -> None:
        """Push an externally produced feedback record straight onto the stream."""
        self.feedback.push(record)

    def run_learning_cycle(self) -> Optional[AdjustmentReport]:
        """Process queued events, then run one learning batch."""
        self._require_initialized()
        return self.learning_loop.run_once()

    # --- Metrics ---

    def _inc(self, name: str, amount: float = 1) -> None:
        with self._counters_lock:
            self._counters[name] = self._counters.get(name, 0) + amount

    def _set_gauge(self, name: str, value: float) -> None:
        try:
            self.metrics.set_gauge(name, value)
        except Exception:
            logger.error("Metrics sink unavailable while setting %s", name)

    def _on_snapshot_published(self, snapshot: PolicySnapshot) -> None:
        self._set_gauge("policy_snapshot_version", snapshot.version)

    def get_metrics(self) -> MetricsSnapshot:
        """Read-only copy of the counters."""
        with self._counters_lock:
            counters = dict(self._counters)
            by_kind = dict(self._decisions_by_kind)
        total_decisions = int(counters.get("total_decisions", 0))
        average = counters.get("latency_sum_ms", 0.0) / total_decisions if total_decisions else 0.0
        return MetricsSnapshot(
            total_requests=int(counters.get("total_requests", 0)),
            total_decisions=total_decisions,
            decisions_by_kind=by_kind,
            average_latency_ms=average,
            error_count=int(counters.get("errors", 0)),
            recording_errors=int(counters.get("recording_errors", 0)),
            events_enqueued=int(counters.get("events_enqueued", 0)),
            events_dropped=int(counters.get("events_dropped", 0)),
            queue_depth=len(self.event_queue),
            pending_feedback=len(self.feedback),
            feedback_dropped=self.feedback.dropped,
            retry_queue_depth=len(self._retry_queue),
            audit_entries_lost=int(counters.get("audit_entries_lost", 0)),
            snapshot_version=self.policy_store.version,
        )
