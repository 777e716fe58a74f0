"""
Learning Adjuster — bounded, deterministic threshold tuning from feedback.

The Bound Rule: a learned threshold never leaves [floor, ceiling], whatever
the magnitude or ordering of the feedback.

Behavioral Contract:
- Consumes feedback in arrival order; adjustments are cumulative, so each
  record is compared against the threshold left by the records before it
- A breach moves the threshold one fixed step in the direction that would
  have prevented it (tighter upper bound for <=, tighter lower bound for >=)
- Unaffected policies pass through unchanged
- Produces a new snapshot with version = base.version + 1; never mutates base
"""

import logging
from typing import Dict, List, Optional, Sequence, Tuple

from agf_kernel.models.config import AdjusterConfig
from agf_kernel.models.events import FeedbackRecord
from agf_kernel.models.learning import AdjustmentReport, ThresholdAdjustment
from agf_kernel.models.policy import Operator, Policy, PolicySnapshot

logger = logging.getLogger("agf_kernel.learning")

# Upper-bound policies are breached from above, lower-bound ones from below
_UPPER_BOUND = (Operator.LTE, Operator.LT)
_LOWER_BOUND = (Operator.GTE, Operator.GT)


def _is_breach(operator: Operator, observed: float, threshold: float) -> bool:
    if operator in _UPPER_BOUND:
        return observed > threshold
    if operator in _LOWER_BOUND:
        return observed < threshold
    return False


def _step_direction(operator: Operator) -> int:
    return -1 if operator in _UPPER_BOUND else 1


def _restore_type(original: float, value: float) -> float:
    """Keep integer thresholds integral when the step allows it."""
    if isinstance(original, int) and float(value).is_integer():
        return int(value)
    return value


class LearningAdjuster:
    """Computes successor snapshots from feedback. Holds no mutable state."""

    def __init__(self, config: Optional[AdjusterConfig] = None):
        self.config = config or AdjusterConfig()

    def bounds_for(self, policy: Policy) -> Tuple[float, float]:
        floor = policy.floor if policy.floor is not None else self.config.floor
        ceiling = policy.ceiling if policy.ceiling is not None else self.config.ceiling
        if floor > ceiling:
            floor, ceiling = ceiling, floor
        return floor, ceiling

    def targets(self, record: FeedbackRecord, policies: Sequence[Policy]) -> List[Policy]:
        """Policies a feedback record speaks about: by id first, else by kind."""
        if record.policy_id:
            return [p for p in policies if p.id == record.policy_id]
        return [p for p in policies if p.feedback_kind and p.feedback_kind == record.kind]

    def adjust(
        self,
        feedback: Sequence[FeedbackRecord],
        base: PolicySnapshot,
    ) -> PolicySnapshot:
        """Return the adjusted successor of `base`."""
        snapshot, _ = self.adjust_with_report(feedback, base)
        return snapshot

    def adjust_with_report(
        self,
        feedback: Sequence[FeedbackRecord],
        base: PolicySnapshot,
    ) -> Tuple[PolicySnapshot, AdjustmentReport]:
        """Return the adjusted successor of `base` plus a per-step report."""
        thresholds: Dict[str, float] = {}
        adjustments: List[ThresholdAdjustment] = []

        for record in feedback:
            for policy in self.targets(record, base.policies):
                if not policy.is_numeric:
                    continue
                current = thresholds.get(policy.id, policy.threshold)
                if not _is_breach(policy.operator, record.observed_value, current):
                    continue

                floor, ceiling = self.bounds_for(policy)
                direction = _step_direction(policy.operator)
                proposed = current + direction * self.config.step
                bounded = min(max(proposed, floor), ceiling)
                # Already at or beyond the bound in the safer direction
                if (bounded - current) * direction <= 0:
                    continue
                bounded = _restore_type(policy.threshold, bounded)
                thresholds[policy.id] = bounded
                adjustments.append(ThresholdAdjustment(
                    policy_id=policy.id,
                    before=current,
                    after=bounded,
                    clamped=bounded != proposed,
                    feedback=record,
                ))

        policies = [
            p.model_copy(update={"threshold": thresholds[p.id]}) if p.id in thresholds else p
            for p in base.policies
        ]
        snapshot = base.with_policies(policies, source="learned")

        if adjustments:
            logger.info(
                "Adjusted %d threshold(s) across %d policies from %d feedback records (v%d -> v%d)",
                len(adjustments),
                len(thresholds),
                len(feedback),
                base.version,
                snapshot.version,
            )

        report = AdjustmentReport(
            base_version=base.version,
            result_version=snapshot.version,
            feedback_count=len(feedback),
            adjustments=adjustments,
        )
        return snapshot, report
