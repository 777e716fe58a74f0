"""Learning Model — threshold adjustments produced by the Learning Adjuster."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from agf_kernel.models.events import FeedbackRecord


class ThresholdAdjustment(BaseModel):
    """A single bounded step applied to one policy's threshold."""

    policy_id: str
    before: float
    after: float
    clamped: bool = False                   # True when floor/ceiling limited the step
    feedback: FeedbackRecord


class AdjustmentReport(BaseModel):
    """What one adjustment batch did to the base snapshot."""

    base_version: int
    result_version: int
    feedback_count: int
    adjustments: List[ThresholdAdjustment] = []
    published: bool = False
    attempts: int = Field(ge=0, default=0)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    error: Optional[str] = None

    @property
    def changed_policies(self) -> List[str]:
        seen: List[str] = []
        for adj in self.adjustments:
            if adj.policy_id not in seen:
                seen.append(adj.policy_id)
        return seen
