"""Event Model — governance events and the feedback records derived from them."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator


class EventPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        """Queue order: lower rank is served first."""
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {
    EventPriority.CRITICAL: 0,
    EventPriority.HIGH: 1,
    EventPriority.MEDIUM: 2,
    EventPriority.LOW: 3,
}

# Event types whose payload must be a FeedbackRecord
FEEDBACK_EVENT_TYPES = ("incident", "feedback")


class GovernanceEvent(BaseModel):
    """An input signal: a request, an incident report, a manual override."""

    model_config = ConfigDict(frozen=True)

    id: str
    type: str = Field(min_length=1)
    source: str = Field(min_length=1)
    data: Dict[str, Any] = {}
    timestamp: datetime
    priority: EventPriority = EventPriority.MEDIUM

    @property
    def carries_feedback(self) -> bool:
        return self.type in FEEDBACK_EVENT_TYPES


class FeedbackRecord(BaseModel):
    """
    Observed-vs-expected outcome signal consumed by the Learning Adjuster.

    Targets either one policy (`policy_id`) or every policy tuned by a kind
    of feedback (`kind`, e.g. "latency"). Incident payloads may use the
    short form {"type": "latency", "value": 300}.
    """

    model_config = ConfigDict(frozen=True)

    policy_id: Optional[str] = None
    kind: Optional[str] = Field(default=None, validation_alias=AliasChoices("kind", "type"))
    observed_value: float = Field(validation_alias=AliasChoices("observed_value", "value"))
    expected_value: Optional[float] = None
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    source: str = "external"

    @model_validator(mode="after")
    def _require_target(self) -> "FeedbackRecord":
        if not self.policy_id and not self.kind:
            raise ValueError("feedback record needs a policy_id or a kind")
        return self
