"""
Policy Store — holds the current policy set as an immutable, versioned snapshot.

Behavioral Contract:
- Exactly one snapshot is current at any instant
- Readers never block and never observe a half-built snapshot
- publish() is an atomic pointer swap, serialized between writers
- Versions strictly increase; a stale publish raises StaleVersionError
- The same contract applies to learned and hand-authored snapshots
"""

import logging
import threading
from collections import deque
from typing import Callable, List, Optional

import yaml

from agf_kernel.errors import StaleVersionError, ValidationError
from agf_kernel.models.policy import Policy, PolicySnapshot

logger = logging.getLogger("agf_kernel.policy_store")

SnapshotListener = Callable[[PolicySnapshot], None]


class PolicyStore:
    """Single-writer, multi-reader holder of the current PolicySnapshot."""

    def __init__(
        self,
        initial: Optional[PolicySnapshot] = None,
        history_size: int = 20,
    ):
        self._current: PolicySnapshot = initial or PolicySnapshot(version=0, source="bootstrap")
        self._write_lock = threading.Lock()
        self._history: deque = deque([self._current], maxlen=history_size)
        self._listeners: List[SnapshotListener] = []

    def current_snapshot(self) -> PolicySnapshot:
        """The current snapshot. A single reference read; never blocks."""
        return self._current

    @property
    def version(self) -> int:
        return self._current.version

    def publish(self, next_snapshot: PolicySnapshot) -> None:
        """Atomically make `next_snapshot` current."""
        with self._write_lock:
            current = self._current
            if next_snapshot.version <= current.version:
                logger.warning(
                    "Rejected stale snapshot v%d (current v%d, source %s)",
                    next_snapshot.version,
                    current.version,
                    next_snapshot.source,
                )
                raise StaleVersionError(current.version, next_snapshot.version)
            self._current = next_snapshot
            self._history.append(next_snapshot)
            listeners = list(self._listeners)

        logger.info(
            "Published policy snapshot v%d (%s, %d policies)",
            next_snapshot.version,
            next_snapshot.source,
            len(next_snapshot.policies),
        )
        for listener in listeners:
            try:
                listener(next_snapshot)
            except Exception:
                logger.exception("Snapshot listener failed for v%d", next_snapshot.version)

    def subscribe(self, listener: SnapshotListener) -> None:
        """Register a callback invoked after each successful publish."""
        with self._write_lock:
            self._listeners.append(listener)

    def history(self, limit: Optional[int] = None) -> List[PolicySnapshot]:
        """Recently published snapshots, oldest first."""
        snapshots = list(self._history)
        return snapshots[-limit:] if limit else snapshots

    def get_version(self, version: int) -> Optional[PolicySnapshot]:
        for snapshot in self._history:
            if snapshot.version == version:
                return snapshot
        return None


def load_snapshot_yaml(path: str, version: int, source: str = "manual") -> PolicySnapshot:
    """
    Build a hand-authored snapshot from a YAML policy file.

    Expected layout:
        policies:
          - id: latency_slo
            name: Latency SLO
            field: latency_p95_ms
            operator: "<="
            threshold: 200
    """
    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ValidationError(f"YAML parse error in policy file {path}: {e}") from e

    if not isinstance(data, dict) or not isinstance(data.get("policies", []), list):
        raise ValidationError(f"Policy file {path} is not a mapping with a 'policies' list")

    try:
        policies = [Policy.model_validate(p) for p in data.get("policies", [])]
        return PolicySnapshot(version=version, policies=tuple(policies), source=source)
    except ValueError as e:
        raise ValidationError(f"Invalid policy definition in {path}: {e}") from e
