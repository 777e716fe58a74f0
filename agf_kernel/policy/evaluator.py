"""
Policy Evaluator — rules a decision request against one policy snapshot.

Behavioral Contract:
- Reads only the snapshot it is handed; never touches the Policy Store
- Evaluates every ACTIVE policy relevant to the request's resource/action
- Reasoning holds one entry per evaluated policy, in snapshot order
- Total: never raises for "no matching rule" or a malformed comparison
- Deterministic apart from the decision id and timestamp

Aggregation:
  escalate-on-fail failure  → ESCALATE (beats everything)
  deny-severity failure     → DENY
  confidence < threshold    → REVIEW
  otherwise                 → ALLOW
"""

import operator as op
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple
from uuid import uuid4

from agf_kernel.models.config import EvaluatorConfig
from agf_kernel.models.context import DecisionRequest, PostureBundle
from agf_kernel.models.decision import DecisionKind, GovernanceDecision, ReasonEntry
from agf_kernel.models.policy import Operator, Policy, PolicySnapshot, Severity

NO_APPLICABLE_POLICY = "No applicable policy for this resource/action; allowed by default"

_MISSING = object()


def _is_member(observed: Any, expected: Any) -> bool:
    if not isinstance(expected, (list, tuple, set, frozenset)):
        raise TypeError("membership threshold must be a collection")
    return observed in expected


# Operator registry: maps each operator to its comparison
COMPARATORS: Dict[Operator, Callable[[Any, Any], bool]] = {
    Operator.GTE: op.ge,
    Operator.LTE: op.le,
    Operator.GT: op.gt,
    Operator.LT: op.lt,
    Operator.EQ: op.eq,
    Operator.NE: op.ne,
    Operator.IN: _is_member,
    Operator.NOT_IN: lambda o, e: not _is_member(o, e),
}


def resolve_field(path: str, *sources: Dict[str, Any]) -> Any:
    """Look up a dotted path in each source in turn; _MISSING if absent everywhere."""
    for source in sources:
        value: Any = source
        found = True
        for part in path.split("."):
            if isinstance(value, dict) and part in value:
                value = value[part]
            else:
                found = False
                break
        if found:
            return value
    return _MISSING


def compare(operator: Operator, observed: Any, expected: Any) -> bool:
    """Apply an operator; incomparable values fail rather than raise."""
    try:
        return bool(COMPARATORS[operator](observed, expected))
    except TypeError:
        return False


def _expected_value(policy: Policy, posture: PostureBundle) -> Any:
    if policy.posture_key:
        override = posture.lookup(policy.posture_key)
        if override is not None:
            return override
    return policy.threshold


def _evaluate_policy(
    policy: Policy,
    request: DecisionRequest,
    posture: PostureBundle,
) -> ReasonEntry:
    expected = _expected_value(policy, posture)
    observed = resolve_field(policy.field, request.observations, request.context)

    if observed is _MISSING:
        return ReasonEntry(
            policy_id=policy.id,
            policy_name=policy.name,
            observed=None,
            expected=expected,
            operator=policy.operator.value,
            passed=False,
            message=f"{policy.name}: no observed value for '{policy.field}' (expected {policy.operator.value} {expected!r}) [FAIL]",
        )

    passed = compare(policy.operator, observed, expected)
    verdict = "PASS" if passed else "FAIL"
    return ReasonEntry(
        policy_id=policy.id,
        policy_name=policy.name,
        observed=observed,
        expected=expected,
        operator=policy.operator.value,
        passed=passed,
        message=f"{policy.name}: observed {observed!r} {policy.operator.value} expected {expected!r} [{verdict}]",
    )


def _aggregate(
    evaluated: List[Tuple[Policy, ReasonEntry]],
    review_threshold: float,
) -> Tuple[DecisionKind, float]:
    total_weight = sum(p.criticality for p, _ in evaluated)
    passed_weight = sum(p.criticality for p, r in evaluated if r.passed)
    confidence = passed_weight / total_weight if total_weight else 1.0

    failures = [p for p, r in evaluated if not r.passed]
    if any(p.escalate_on_fail for p in failures):
        return DecisionKind.ESCALATE, confidence
    if any(p.severity == Severity.DENY for p in failures):
        return DecisionKind.DENY, confidence
    if confidence < review_threshold:
        return DecisionKind.REVIEW, confidence
    return DecisionKind.ALLOW, confidence


class PolicyEvaluator:
    """Stateless evaluator. Safe to share across threads."""

    def __init__(self, config: Optional[EvaluatorConfig] = None):
        self.config = config or EvaluatorConfig()

    def applicable_policies(
        self, request: DecisionRequest, snapshot: PolicySnapshot
    ) -> List[Policy]:
        return [
            p for p in snapshot.policies
            if p.is_active and p.applies_to(request.resource, request.action)
        ]

    def evaluate(
        self,
        request: DecisionRequest,
        posture: PostureBundle,
        snapshot: PolicySnapshot,
        request_id: Optional[str] = None,
        current_time: Optional[datetime] = None,
    ) -> GovernanceDecision:
        """Evaluate a request against one snapshot and return the decision."""
        if current_time is None:
            current_time = datetime.utcnow()

        policies = self.applicable_policies(request, snapshot)

        if not policies:
            decision = DecisionKind.ALLOW
            confidence = 1.0
            reasoning = [ReasonEntry(passed=True, message=NO_APPLICABLE_POLICY)]
        else:
            evaluated = [(p, _evaluate_policy(p, request, posture)) for p in policies]
            decision, confidence = _aggregate(evaluated, self.config.review_threshold)
            reasoning = [r for _, r in evaluated]

        return GovernanceDecision(
            id=f"dec_{uuid4().hex[:12]}",
            request_id=request_id or f"req_{uuid4().hex[:12]}",
            decision=decision,
            confidence=round(confidence, 6),
            reasoning=reasoning,
            snapshot_version=snapshot.version,
            posture_profile=posture.profile,
            resource=request.resource,
            action=request.action,
            timestamp=current_time,
        )
