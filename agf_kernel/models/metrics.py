"""Metrics snapshot — read-only view of the Orchestrator's counters."""

from typing import Dict

from pydantic import BaseModel, ConfigDict


class MetricsSnapshot(BaseModel):
    """Point-in-time copy of the counters; mutating the kernel never changes it."""

    model_config = ConfigDict(frozen=True)

    total_requests: int = 0
    total_decisions: int = 0
    decisions_by_kind: Dict[str, int] = {}
    average_latency_ms: float = 0.0
    error_count: int = 0
    recording_errors: int = 0
    events_enqueued: int = 0
    events_dropped: int = 0
    queue_depth: int = 0
    pending_feedback: int = 0
    feedback_dropped: int = 0
    retry_queue_depth: int = 0
    audit_entries_lost: int = 0
    snapshot_version: int = 0
