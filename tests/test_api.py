"""Tests for the FastAPI API endpoints."""

import pytest
from fastapi.testclient import TestClient

from agf_kernel.api.app import create_app
from agf_kernel.audit.store import AuditStore
from agf_kernel.models.config import OrchestratorConfig
from agf_kernel.orchestrator.orchestrator import GovernanceOrchestrator
from agf_kernel.policy.store import PolicyStore

LATENCY_POLICY = {
    "id": "latency_slo",
    "name": "Latency SLO",
    "field": "latency_p95_ms",
    "operator": "<=",
    "threshold": 280,
    "feedback_kind": "latency",
}


@pytest.fixture
def orchestrator():
    """Create an orchestrator with fresh components."""
    return GovernanceOrchestrator(
        config=OrchestratorConfig(event_queue_capacity=2),
        policy_store=PolicyStore(),
        audit_sink=AuditStore(db_path=":memory:"),
    )


@pytest.fixture
def client(orchestrator):
    app = create_app(orchestrator=orchestrator)
    return TestClient(app)


def _publish_latency_policy(client):
    response = client.post("/policies", json={"policies": [LATENCY_POLICY]})
    assert response.status_code == 200
    return response.json()["version"]


class TestDecisionEndpoints:
    def test_decision_without_policies_allows(self, client):
        response = client.post("/decisions", json={"resource": "checkout", "action": "deploy"})
        assert response.status_code == 200
        data = response.json()
        assert data["decision"] == "allow"
        assert data["confidence"] == 1.0
        assert data["snapshot_version"] == 0

    def test_decision_against_published_policy(self, client):
        _publish_latency_policy(client)

        response = client.post("/decisions", json={
            "resource": "checkout",
            "action": "deploy",
            "context": {"project_type": "fintech"},
            "observations": {"latency_p95_ms": 300},
        })
        assert response.status_code == 200
        data = response.json()
        assert data["decision"] == "deny"
        assert data["posture_profile"] == "fintech"
        assert data["reasoning"][0]["policy_id"] == "latency_slo"

    def test_malformed_decision(self, client):
        response = client.post("/decisions", json={"resource": "", "action": "deploy"})
        assert response.status_code == 422

    def test_not_initialized(self, orchestrator, client):
        orchestrator.shutdown()
        response = client.post("/decisions", json={"resource": "checkout", "action": "deploy"})
        assert response.status_code == 503


class TestPolicyEndpoints:
    def test_publish_and_get(self, client):
        version = _publish_latency_policy(client)
        assert version == 1

        response = client.get("/policies")
        assert response.status_code == 200
        data = response.json()
        assert data["version"] == 1
        assert data["policies"][0]["threshold"] == 280

    def test_stale_publish(self, client):
        _publish_latency_policy(client)
        response = client.post("/policies", json={"policies": [LATENCY_POLICY], "version": 1})
        assert response.status_code == 409

    def test_malformed_policy(self, client):
        response = client.post("/policies", json={"policies": [{"id": "broken"}]})
        assert response.status_code == 422

    def test_negative_version_rejected(self, client):
        response = client.post("/policies", json={"policies": [], "version": -1})
        assert response.status_code == 422
        assert client.get("/policies").json()["version"] == 0

    def test_history(self, client):
        _publish_latency_policy(client)
        response = client.get("/policies/history")
        assert response.status_code == 200
        assert [s["version"] for s in response.json()] == [0, 1]


class TestEventEndpoints:
    def test_emit_event(self, client):
        response = client.post("/events", json={"type": "override", "source": "ops"})
        assert response.status_code == 200
        assert response.json()["status"] == "enqueued"

    def test_invalid_priority(self, client):
        response = client.post("/events", json={"type": "override", "source": "ops", "priority": "urgent"})
        assert response.status_code == 422

    def test_queue_full(self, client):
        for _ in range(2):
            client.post("/events", json={"type": "override", "source": "ops"})
        response = client.post("/events", json={"type": "override", "source": "ops"})
        assert response.status_code == 429

    def test_feedback(self, client):
        response = client.post("/feedback", json={"type": "latency", "value": 300})
        assert response.status_code == 200
        assert response.json()["pending_feedback"] == 1

    def test_malformed_feedback(self, client):
        response = client.post("/feedback", json={"value": 300})
        assert response.status_code == 422


class TestLearningEndpoints:
    def test_idle_trigger(self, client):
        response = client.post("/learning/trigger")
        assert response.status_code == 200
        assert response.json()["status"] == "idle"

    def test_incident_tightens_threshold(self, client):
        _publish_latency_policy(client)
        client.post("/events", json={
            "type": "incident",
            "source": "monitor",
            "priority": "high",
            "data": {"type": "latency", "value": 300},
        })

        response = client.post("/learning/trigger")
        assert response.status_code == 200
        assert response.json()["published"] is True

        policies = client.get("/policies").json()
        assert policies["version"] == 2
        assert policies["source"] == "learned"
        assert policies["policies"][0]["threshold"] == 230


class TestContextEndpoints:
    def test_analyze(self, client):
        response = client.post("/context/analyze", json={"context": {"project_type": "healthcare"}})
        assert response.status_code == 200
        data = response.json()
        assert data["profile"] == "healthcare"
        assert data["domains"]["security"]["audit_trail"] == "hipaa"


class TestAuditEndpoints:
    def test_verify_integrity_empty(self, client):
        response = client.get("/audit/verify")
        assert response.status_code == 200
        data = response.json()
        assert data["integrity_valid"] is True
        assert data["total_records"] == 0

    def test_decisions_are_audited(self, client):
        decision = client.post("/decisions", json={"resource": "checkout", "action": "deploy"}).json()

        records = client.get("/audit").json()
        assert [r["decision"]["id"] for r in records] == [decision["id"]]

        response = client.get(f"/audit/decisions/{decision['id']}")
        assert response.status_code == 200
        assert response.json()["snapshot_version"] == 0

    def test_unknown_decision(self, client):
        response = client.get("/audit/decisions/dec_missing")
        assert response.status_code == 404

    def test_retry(self, client):
        response = client.post("/audit/retry")
        assert response.status_code == 200
        assert response.json() == {"recovered": 0}


class TestMetricsEndpoints:
    def test_metrics(self, client):
        client.post("/decisions", json={"resource": "checkout", "action": "deploy"})
        client.post("/decisions", json={"resource": "checkout", "action": "deploy"})

        response = client.get("/metrics")
        assert response.status_code == 200
        data = response.json()
        assert data["total_decisions"] == 2
        assert data["decisions_by_kind"]["allow"] == 2
        assert data["error_count"] == 0

    def test_metrics_detail(self, client):
        client.post("/decisions", json={"resource": "checkout", "action": "deploy"})

        response = client.get("/metrics", params={"detail": "true"})
        assert response.status_code == 200
        data = response.json()
        assert data["kernel"]["total_decisions"] == 1
        assert data["decisions_total"] == {"allow": 1.0}
        assert data["decision_latency_ms"]["p95"] is not None
        assert data["series"]["gauges"]["policy_snapshot_version"] == 0
