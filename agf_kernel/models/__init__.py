"""AGF Kernel data models."""

from agf_kernel.models.audit import AuditRecord
from agf_kernel.models.config import (
    AdjusterConfig,
    EvaluatorConfig,
    LearningLoopConfig,
    OrchestratorConfig,
)
from agf_kernel.models.context import DecisionRequest, PostureBundle
from agf_kernel.models.decision import (
    DecisionKind,
    DecisionState,
    GovernanceDecision,
    ReasonEntry,
)
from agf_kernel.models.events import EventPriority, FeedbackRecord, GovernanceEvent
from agf_kernel.models.learning import AdjustmentReport, ThresholdAdjustment
from agf_kernel.models.metrics import MetricsSnapshot
from agf_kernel.models.policy import (
    Operator,
    Policy,
    PolicySnapshot,
    PolicyStatus,
    Severity,
)

__all__ = [
    "AdjusterConfig",
    "AdjustmentReport",
    "AuditRecord",
    "DecisionKind",
    "DecisionRequest",
    "DecisionState",
    "EvaluatorConfig",
    "EventPriority",
    "FeedbackRecord",
    "GovernanceDecision",
    "GovernanceEvent",
    "LearningLoopConfig",
    "MetricsSnapshot",
    "Operator",
    "OrchestratorConfig",
    "Policy",
    "PolicySnapshot",
    "PolicyStatus",
    "PostureBundle",
    "ReasonEntry",
    "Severity",
    "ThresholdAdjustment",
]
