"""
Metrics Collector — in-memory counters, gauges and latency histograms.

Implements the MetricsSink the Orchestrator records into:
  decisions_total{kind}, decision_latency_ms, errors_total,
  policy_snapshot_version (gauge)

Kept in-process with a rolling histogram window; an exporter for an
external metrics backend can read from the same accessors.
"""

import logging
import threading
from collections import deque
from typing import Dict, Optional, Protocol, Tuple

logger = logging.getLogger("agf_kernel.metrics")

LabelKey = Tuple[Tuple[str, str], ...]


class MetricsSink(Protocol):
    """What the Orchestrator needs from a metrics backend."""

    def inc_counter(self, name: str, amount: float = 1.0, **labels: str) -> None: ...

    def observe(self, name: str, value: float) -> None: ...

    def set_gauge(self, name: str, value: float) -> None: ...


def _label_key(labels: Dict[str, str]) -> LabelKey:
    return tuple(sorted(labels.items()))


class MetricsCollector:
    """Thread-safe collector with a rolling window per histogram."""

    def __init__(self, window_size: int = 1000) -> None:
        self.window_size = window_size
        self._counters: Dict[str, Dict[LabelKey, float]] = {}
        self._gauges: Dict[str, float] = {}
        self._histograms: Dict[str, deque] = {}
        self._histogram_totals: Dict[str, Tuple[int, float]] = {}
        self._lock = threading.Lock()

    def inc_counter(self, name: str, amount: float = 1.0, **labels: str) -> None:
        """Increment a monotonic counter, optionally split by labels."""
        with self._lock:
            series = self._counters.setdefault(name, {})
            key = _label_key(labels)
            series[key] = series.get(key, 0.0) + amount

    def set_gauge(self, name: str, value: float) -> None:
        with self._lock:
            self._gauges[name] = value

    def observe(self, name: str, value: float) -> None:
        """Record a histogram observation."""
        with self._lock:
            if name not in self._histograms:
                self._histograms[name] = deque(maxlen=self.window_size)
            self._histograms[name].append(value)
            count, total = self._histogram_totals.get(name, (0, 0.0))
            self._histogram_totals[name] = (count + 1, total + value)

    def get_counter(self, name: str, **labels: str) -> float:
        """Counter value for one label set; without labels, the sum across all series."""
        with self._lock:
            series = self._counters.get(name, {})
            if labels:
                return series.get(_label_key(labels), 0.0)
            return sum(series.values())

    def get_counter_by_label(self, name: str, label: str) -> Dict[str, float]:
        with self._lock:
            result: Dict[str, float] = {}
            for key, value in self._counters.get(name, {}).items():
                label_value = dict(key).get(label)
                if label_value is not None:
                    result[label_value] = result.get(label_value, 0.0) + value
            return result

    def get_gauge(self, name: str) -> float:
        with self._lock:
            return self._gauges.get(name, 0.0)

    def get_histogram_avg(self, name: str) -> Optional[float]:
        """Mean over every observation ever recorded."""
        with self._lock:
            count, total = self._histogram_totals.get(name, (0, 0.0))
            return total / count if count else None

    def get_histogram_percentile(self, name: str, percentile: float) -> Optional[float]:
        """Percentile over the rolling window."""
        with self._lock:
            values = sorted(self._histograms.get(name, ()))
        if not values:
            return None
        idx = min(int(len(values) * percentile / 100.0), len(values) - 1)
        return values[idx]

    def export(self) -> dict:
        """Flat dump for dashboards and the HTTP surface."""
        with self._lock:
            counters = {
                name: {",".join(f"{k}={v}" for k, v in key) or "_total": value
                       for key, value in series.items()}
                for name, series in self._counters.items()
            }
            gauges = dict(self._gauges)
            histograms = {
                name: {"count": count, "sum": total}
                for name, (count, total) in self._histogram_totals.items()
            }
        return {"counters": counters, "gauges": gauges, "histograms": histograms}

    def reset(self) -> None:
        with self._lock:
            self._counters.clear()
            self._gauges.clear()
            self._histograms.clear()
            self._histogram_totals.clear()
        logger.info("Metrics reset")
