"""Governance Decision — the Orchestrator's ruling on a single request."""

from datetime import datetime
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class DecisionKind(str, Enum):
    ALLOW = "allow"
    DENY = "deny"
    REVIEW = "review"
    ESCALATE = "escalate"


class DecisionState(str, Enum):
    """Per-request lifecycle inside the Orchestrator."""
    RECEIVED = "received"
    CONTEXT_RESOLVED = "context_resolved"
    POLICY_EVALUATED = "policy_evaluated"
    DECIDED = "decided"
    RECORDED = "recorded"


class ReasonEntry(BaseModel):
    """One line of reasoning per evaluated policy, in snapshot order."""

    model_config = ConfigDict(frozen=True)

    policy_id: Optional[str] = None         # None for the "no applicable policy" entry
    policy_name: Optional[str] = None
    observed: Any = None
    expected: Any = None
    operator: Optional[str] = None
    passed: bool = True
    message: str


class GovernanceDecision(BaseModel):
    """Created exactly once per request; never mutated afterwards."""

    model_config = ConfigDict(frozen=True)

    id: str
    request_id: str
    decision: DecisionKind
    confidence: float = Field(ge=0.0, le=1.0)
    reasoning: List[ReasonEntry]
    snapshot_version: int
    posture_profile: Optional[str] = None
    resource: str = ""
    action: str = ""
    timestamp: datetime

    @property
    def failed_policies(self) -> List[str]:
        return [r.policy_id for r in self.reasoning if not r.passed and r.policy_id]

    def explain(self) -> str:
        """Human-readable summary, one reasoning line per row."""
        lines = [
            f"{self.decision.value.upper()} (confidence {self.confidence:.2f}, "
            f"snapshot v{self.snapshot_version})"
        ]
        lines.extend(f"  - {r.message}" for r in self.reasoning)
        return "\n".join(lines)
