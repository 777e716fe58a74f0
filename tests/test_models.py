"""Tests for core data models."""

from datetime import datetime

import pytest

from agf_kernel.models import (
    AdjusterConfig,
    DecisionKind,
    DecisionRequest,
    EventPriority,
    FeedbackRecord,
    GovernanceDecision,
    GovernanceEvent,
    Operator,
    Policy,
    PolicySnapshot,
    PolicyStatus,
    PostureBundle,
    ReasonEntry,
)


def _make_policy(policy_id: str = "latency_slo", **overrides) -> Policy:
    fields = dict(
        id=policy_id,
        name="Latency SLO",
        field="latency_p95_ms",
        operator=Operator.LTE,
        threshold=280,
    )
    fields.update(overrides)
    return Policy(**fields)


class TestPolicy:
    def test_defaults(self):
        policy = _make_policy()
        assert policy.status == PolicyStatus.ACTIVE
        assert policy.is_active is True
        assert policy.is_numeric is True
        assert policy.criticality == 1.0

    def test_frozen(self):
        policy = _make_policy()
        with pytest.raises(Exception):
            policy.threshold = 100

    def test_membership_policy_is_not_numeric(self):
        policy = _make_policy(operator=Operator.IN, threshold=["eu", "us"])
        assert policy.is_numeric is False

    def test_criticality_must_be_positive(self):
        with pytest.raises(Exception):
            _make_policy(criticality=0)

    def test_scope(self):
        policy = _make_policy(resources=["payments"], actions=["deploy"])
        assert policy.applies_to("payments", "deploy")
        assert not policy.applies_to("payments", "read")
        assert not policy.applies_to("search", "deploy")

    def test_empty_scope_matches_everything(self):
        assert _make_policy().applies_to("anything", "whatever")


class TestPolicySnapshot:
    def test_with_policies_builds_successor(self):
        base = PolicySnapshot(version=4, policies=(_make_policy(),))
        successor = base.with_policies([_make_policy(threshold=230)], source="learned")

        assert successor.version == 5
        assert successor.parent_version == 4
        assert successor.source == "learned"
        assert successor.get("latency_slo").threshold == 230
        # Base untouched
        assert base.version == 4
        assert base.get("latency_slo").threshold == 280

    def test_version_cannot_be_negative(self):
        with pytest.raises(Exception):
            PolicySnapshot(version=-1)

    def test_active_policies(self):
        snapshot = PolicySnapshot(
            version=1,
            policies=(
                _make_policy("a"),
                _make_policy("b", status=PolicyStatus.DISABLED),
            ),
        )
        assert [p.id for p in snapshot.active_policies()] == ["a"]
        assert snapshot.policy_ids() == ["a", "b"]
        assert snapshot.get("missing") is None


class TestPostureBundle:
    def test_empty_bundle(self):
        bundle = PostureBundle()
        assert bundle.is_empty
        assert bundle.lookup("performance.latency_p95_ms") is None

    def test_lookup_and_flatten(self):
        bundle = PostureBundle(
            profile="fintech",
            domains={"performance": {"latency_p95_ms": 200}, "security": {"encryption": "AES-256"}},
        )
        assert not bundle.is_empty
        assert bundle.lookup("performance.latency_p95_ms") == 200
        assert bundle.lookup("performance") is None
        assert bundle.expectation("security", "missing", "n/a") == "n/a"
        assert bundle.flatten() == {
            "performance.latency_p95_ms": 200,
            "security.encryption": "AES-256",
        }


class TestDecisionRequest:
    def test_resource_and_action_required(self):
        with pytest.raises(Exception):
            DecisionRequest(resource="", action="deploy")
        with pytest.raises(Exception):
            DecisionRequest(resource="svc", action="")


class TestGovernanceDecision:
    def test_failed_policies_and_explain(self):
        decision = GovernanceDecision(
            id="dec_1",
            request_id="req_1",
            decision=DecisionKind.DENY,
            confidence=0.5,
            reasoning=[
                ReasonEntry(policy_id="a", passed=True, message="a ok"),
                ReasonEntry(policy_id="b", passed=False, message="b failed"),
            ],
            snapshot_version=3,
            timestamp=datetime.utcnow(),
        )
        assert decision.failed_policies == ["b"]
        text = decision.explain()
        assert text.startswith("DENY (confidence 0.50, snapshot v3)")
        assert "b failed" in text

    def test_confidence_bounds(self):
        with pytest.raises(Exception):
            GovernanceDecision(
                id="dec_1",
                request_id="req_1",
                decision=DecisionKind.ALLOW,
                confidence=1.5,
                reasoning=[],
                snapshot_version=0,
                timestamp=datetime.utcnow(),
            )


class TestEvents:
    def test_priority_rank(self):
        ranks = [p.rank for p in (EventPriority.CRITICAL, EventPriority.HIGH,
                                  EventPriority.MEDIUM, EventPriority.LOW)]
        assert ranks == sorted(ranks)

    def test_event_requires_type_and_source(self):
        with pytest.raises(Exception):
            GovernanceEvent(id="e1", type="", source="monitor", timestamp=datetime.utcnow())

    def test_feedback_short_form(self):
        record = FeedbackRecord.model_validate({"type": "latency", "value": 300})
        assert record.kind == "latency"
        assert record.observed_value == 300
        assert record.policy_id is None

    def test_feedback_needs_target(self):
        with pytest.raises(Exception):
            FeedbackRecord(observed_value=300)

    def test_feedback_needs_value(self):
        with pytest.raises(Exception):
            FeedbackRecord.model_validate({"type": "latency"})


class TestConfig:
    def test_adjuster_defaults(self):
        config = AdjusterConfig()
        assert (config.step, config.floor, config.ceiling) == (50.0, 100.0, 10_000.0)

    def test_floor_above_ceiling_rejected(self):
        with pytest.raises(Exception):
            AdjusterConfig(floor=500, ceiling=100)
