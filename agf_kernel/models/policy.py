"""Policy Model — named rules and the immutable, versioned snapshots that hold them."""

from datetime import datetime
from enum import Enum
from typing import Any, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class PolicyStatus(str, Enum):
    ACTIVE = "ACTIVE"
    DISABLED = "DISABLED"
    DRAFT = "DRAFT"
    ARCHIVED = "ARCHIVED"


class Operator(str, Enum):
    GTE = ">="
    LTE = "<="
    GT = ">"
    LT = "<"
    EQ = "=="
    NE = "!="
    IN = "in"
    NOT_IN = "not_in"


class Severity(str, Enum):
    """What a failing policy contributes to the aggregate decision."""
    DENY = "deny"       # Any failure denies the request
    REVIEW = "review"   # Failure only lowers confidence


NUMERIC_OPERATORS = (Operator.GTE, Operator.LTE, Operator.GT, Operator.LT)


class Policy(BaseModel):
    """A single governance rule: compare an observed field against a threshold."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    field: str                              # Dotted path, e.g. "latency_p95_ms"
    operator: Operator
    threshold: Any                          # Number, string, or list for membership
    status: PolicyStatus = PolicyStatus.ACTIVE
    severity: Severity = Severity.DENY
    escalate_on_fail: bool = False
    criticality: float = Field(gt=0, default=1.0)
    resources: List[str] = []               # Empty = applies to every resource
    actions: List[str] = []                 # Empty = applies to every action
    feedback_kind: Optional[str] = None     # e.g. "latency"; feedback of this kind tunes the threshold
    posture_key: Optional[str] = None       # e.g. "performance.latency_p95_ms"
    floor: Optional[float] = None
    ceiling: Optional[float] = None
    description: str = ""

    @property
    def is_active(self) -> bool:
        return self.status == PolicyStatus.ACTIVE

    @property
    def is_numeric(self) -> bool:
        return (
            self.operator in NUMERIC_OPERATORS
            and isinstance(self.threshold, (int, float))
            and not isinstance(self.threshold, bool)
        )

    def applies_to(self, resource: str, action: str) -> bool:
        """Scope check: empty scope lists match everything."""
        if self.resources and resource not in self.resources:
            return False
        if self.actions and action not in self.actions:
            return False
        return True


class PolicySnapshot(BaseModel):
    """
    Immutable point-in-time view of the policy set.

    The Policy Store holds exactly one current snapshot. A new policy set is
    always a new snapshot with a higher version; snapshots are never edited.
    """

    model_config = ConfigDict(frozen=True)

    version: int = Field(ge=0)
    policies: Tuple[Policy, ...] = ()
    published_at: datetime = Field(default_factory=datetime.utcnow)
    source: str = "manual"                  # "manual" | "learned" | "bootstrap"
    parent_version: Optional[int] = None

    def get(self, policy_id: str) -> Optional[Policy]:
        for policy in self.policies:
            if policy.id == policy_id:
                return policy
        return None

    def active_policies(self) -> List[Policy]:
        return [p for p in self.policies if p.is_active]

    def policy_ids(self) -> List[str]:
        return [p.id for p in self.policies]

    def with_policies(self, policies: List[Policy], source: str) -> "PolicySnapshot":
        """Build the successor snapshot; this one is left untouched."""
        return PolicySnapshot(
            version=self.version + 1,
            policies=tuple(policies),
            source=source,
            parent_version=self.version,
        )
