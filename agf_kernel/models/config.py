"""Kernel configuration models."""

from typing import Optional

from pydantic import BaseModel, Field, model_validator


class EvaluatorConfig(BaseModel):
    """Configuration for the Policy Evaluator."""

    review_threshold: float = Field(ge=0.0, le=1.0, default=0.8)


class AdjusterConfig(BaseModel):
    """Bounds for threshold adjustment. Per-policy floor/ceiling take precedence."""

    step: float = Field(gt=0, default=50.0)
    floor: float = 100.0
    ceiling: float = 10_000.0

    @model_validator(mode="after")
    def _check_bounds(self) -> "AdjusterConfig":
        if self.floor > self.ceiling:
            raise ValueError("floor must not exceed ceiling")
        return self


class LearningLoopConfig(BaseModel):
    """Cadence of the learning loop."""

    interval_seconds: float = Field(gt=0, default=300.0)
    schedule: Optional[str] = None          # Cron expression; overrides interval
    max_retries: int = Field(ge=0, default=3)
    batch_size: int = Field(gt=0, default=500)


class OrchestratorConfig(BaseModel):
    """Configuration for the Governance Orchestrator and its owned collaborators."""

    event_queue_capacity: int = Field(gt=0, default=1000)
    feedback_capacity: int = Field(gt=0, default=5000)
    retry_queue_capacity: int = Field(gt=0, default=1000)
    audit_db_path: str = ":memory:"
    history_size: int = Field(gt=0, default=20)
    evaluator: EvaluatorConfig = EvaluatorConfig()
    adjuster: AdjusterConfig = AdjusterConfig()
    learning: LearningLoopConfig = LearningLoopConfig()
