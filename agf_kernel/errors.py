"""Error taxonomy for the governance kernel."""

from typing import Optional


class GovernanceError(Exception):
    """Base class for every error the kernel raises on purpose."""
    pass


class ValidationError(GovernanceError):
    """Malformed request or event. Rejected before entering the pipeline."""
    pass


class StaleVersionError(GovernanceError):
    """A snapshot publish lost the race against a newer snapshot."""

    def __init__(self, current_version: int, attempted_version: int):
        self.current_version = current_version
        self.attempted_version = attempted_version
        super().__init__(
            f"Snapshot version {attempted_version} is not newer than "
            f"current version {current_version}"
        )


class QueueFullError(GovernanceError):
    """Event queue at capacity. The caller retries or drops."""

    def __init__(self, capacity: int):
        self.capacity = capacity
        super().__init__(f"Event queue full (capacity {capacity})")


class RecordingError(GovernanceError):
    """Audit or metrics sink failure. Non-fatal: the decision stands."""

    def __init__(self, sink: str, decision_id: Optional[str] = None, cause: Optional[Exception] = None):
        self.sink = sink
        self.decision_id = decision_id
        self.cause = cause
        super().__init__(f"Recording to {sink} failed for decision {decision_id}: {cause}")


class NotInitializedError(GovernanceError):
    """Orchestrator used before initialize() completed."""
    pass
