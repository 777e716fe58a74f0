"""
AGF Kernel API — FastAPI endpoints.

Thin HTTP wrapper around the in-process Governance Orchestrator for:
- Decision requests
- Event and feedback submission
- Policy snapshot inspection and publishing
- Learning cycle control
- Audit queries
- Metrics
"""

from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from agf_kernel.audit.store import AuditStore
from agf_kernel.errors import (
    NotInitializedError,
    QueueFullError,
    StaleVersionError,
    ValidationError,
)
from agf_kernel.metrics.collector import MetricsCollector
from agf_kernel.models.events import FeedbackRecord
from agf_kernel.models.policy import Policy, PolicySnapshot
from agf_kernel.orchestrator.orchestrator import GovernanceOrchestrator


# --- Request/Response Models ---

class DecisionCreateRequest(BaseModel):
    resource: str
    action: str
    user_id: Optional[str] = None
    context: Dict[str, Any] = {}
    observations: Dict[str, Any] = {}


class EventCreateRequest(BaseModel):
    type: str
    source: str
    data: Dict[str, Any] = {}
    priority: str = "medium"


class SnapshotPublishRequest(BaseModel):
    policies: List[dict]
    version: Optional[int] = None           # Defaults to current + 1


class ContextAnalyzeRequest(BaseModel):
    context: Dict[str, Any] = {}


def _raise_http(error: Exception) -> None:
    if isinstance(error, ValidationError):
        raise HTTPException(422, str(error))
    if isinstance(error, QueueFullError):
        raise HTTPException(429, str(error))
    if isinstance(error, StaleVersionError):
        raise HTTPException(409, str(error))
    if isinstance(error, NotInitializedError):
        raise HTTPException(503, str(error))
    raise error


# --- Application Factory ---

def create_app(orchestrator: Optional[GovernanceOrchestrator] = None) -> FastAPI:
    """Create and configure the FastAPI application."""

    app = FastAPI(
        title="AGF Kernel API",
        description="Adaptive Governance Framework — decision kernel",
        version="0.1.0",
    )

    gov = orchestrator or GovernanceOrchestrator()
    gov.initialize()
    app.state.orchestrator = gov

    # === DECISIONS ===

    @app.post("/decisions")
    def make_decision(req: DecisionCreateRequest):
        """Evaluate a request and return the decision."""
        try:
            decision = gov.make_decision(req.model_dump())
        except (ValidationError, NotInitializedError) as e:
            _raise_http(e)
        return decision.model_dump(mode="json")

    # === EVENTS & FEEDBACK ===

    @app.post("/events")
    def emit_event(req: EventCreateRequest):
        """Enqueue a governance event (incident reports, overrides, ...)."""
        try:
            event = gov.emit_event(req.model_dump())
        except (ValidationError, QueueFullError, NotInitializedError) as e:
            _raise_http(e)
        return {"status": "enqueued", "event_id": event.id, "queue_depth": len(gov.event_queue)}

    @app.post("/feedback")
    def submit_feedback(payload: Dict[str, Any]):
        """Submit a feedback record directly to the learning stream."""
        try:
            record = FeedbackRecord.model_validate(payload)
        except PydanticValidationError as e:
            raise HTTPException(422, f"Malformed feedback record: {e}")
        gov.submit_feedback(record)
        return {"status": "accepted", "pending_feedback": len(gov.feedback)}

    # === POLICIES ===

    @app.get("/policies")
    def get_current_snapshot():
        """The current policy snapshot."""
        return gov.policy_store.current_snapshot().model_dump(mode="json")

    @app.get("/policies/history")
    def get_snapshot_history(limit: int = 10):
        """Recently published snapshot versions."""
        return [
            {"version": s.version, "source": s.source, "parent_version": s.parent_version,
             "published_at": s.published_at.isoformat(), "policies": len(s.policies)}
            for s in gov.policy_store.history(limit)
        ]

    @app.post("/policies")
    def publish_snapshot(req: SnapshotPublishRequest):
        """Publish a hand-authored snapshot."""
        current = gov.policy_store.current_snapshot()
        version = req.version if req.version is not None else current.version + 1
        try:
            snapshot = PolicySnapshot(
                version=version,
                policies=tuple(Policy.model_validate(p) for p in req.policies),
                source="manual",
                parent_version=current.version,
            )
        except PydanticValidationError as e:
            raise HTTPException(422, f"Malformed policy snapshot: {e}")
        try:
            gov.policy_store.publish(snapshot)
        except StaleVersionError as e:
            _raise_http(e)
        return {"status": "published", "version": snapshot.version}

    # === CONTEXT ===

    @app.post("/context/analyze")
    def analyze_context(req: ContextAnalyzeRequest):
        """Posture bundle for a context (for inspection)."""
        return gov.context_analyzer.analyze(req.context).model_dump(mode="json")

    # === LEARNING ===

    @app.post("/learning/trigger")
    def trigger_learning():
        """Force a learning batch."""
        report = gov.run_learning_cycle()
        if report is None:
            return {"status": "idle", "version": gov.policy_store.version}
        return report.model_dump(mode="json")

    # === AUDIT ===

    def _audit_store() -> AuditStore:
        if not isinstance(gov.audit, AuditStore):
            raise HTTPException(501, "Configured audit sink does not support queries")
        return gov.audit

    @app.get("/audit")
    def get_audit(limit: int = 50):
        """Recent audit records."""
        return [r.model_dump(mode="json") for r in _audit_store().query_recent(limit=limit)]

    @app.get("/audit/verify")
    def verify_audit():
        """Verify chain integrity."""
        return {
            "integrity_valid": _audit_store().verify_chain_integrity(),
            "total_records": _audit_store().count(),
        }

    @app.get("/audit/decisions/{decision_id}")
    def get_audit_record(decision_id: str):
        record = _audit_store().get_by_decision(decision_id)
        if not record:
            raise HTTPException(404, "Decision not found")
        return record.model_dump(mode="json")

    @app.post("/audit/retry")
    def retry_audit():
        """Re-send audit writes that failed earlier."""
        return {"recovered": gov.retry_failed_recordings()}

    # === METRICS ===

    @app.get("/metrics")
    def get_metrics(detail: bool = False):
        """Read-only counters snapshot; `detail=true` adds the collector's series."""
        snapshot = gov.get_metrics().model_dump(mode="json")
        if not detail:
            return snapshot
        if not isinstance(gov.metrics, MetricsCollector):
            raise HTTPException(501, "Configured metrics sink does not support export")
        collector = gov.metrics
        return {
            "kernel": snapshot,
            "decisions_total": collector.get_counter_by_label("decisions_total", "kind"),
            "decision_latency_ms": {
                "p50": collector.get_histogram_percentile("decision_latency_ms", 50),
                "p95": collector.get_histogram_percentile("decision_latency_ms", 95),
                "p99": collector.get_histogram_percentile("decision_latency_ms", 99),
            },
            "series": collector.export(),
        }

    return app


# Default application instance
app = create_app()
