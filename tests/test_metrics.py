"""Tests for the in-memory Metrics Collector."""

from agf_kernel.metrics.collector import MetricsCollector


class TestMetricsCollector:
    def setup_method(self):
        self.metrics = MetricsCollector(window_size=5)

    def test_labeled_counters(self):
        self.metrics.inc_counter("decisions_total", kind="allow")
        self.metrics.inc_counter("decisions_total", kind="allow")
        self.metrics.inc_counter("decisions_total", kind="deny")

        assert self.metrics.get_counter("decisions_total", kind="allow") == 2
        assert self.metrics.get_counter("decisions_total") == 3
        assert self.metrics.get_counter_by_label("decisions_total", "kind") == {"allow": 2, "deny": 1}
        assert self.metrics.get_counter("unknown") == 0

    def test_gauge(self):
        self.metrics.set_gauge("policy_snapshot_version", 3)
        self.metrics.set_gauge("policy_snapshot_version", 4)
        assert self.metrics.get_gauge("policy_snapshot_version") == 4

    def test_histogram(self):
        for value in range(1, 11):
            self.metrics.observe("decision_latency_ms", float(value))

        # Average over everything, percentile over the last five
        assert self.metrics.get_histogram_avg("decision_latency_ms") == 5.5
        assert self.metrics.get_histogram_percentile("decision_latency_ms", 0) == 6.0
        assert self.metrics.get_histogram_percentile("decision_latency_ms", 100) == 10.0
        assert self.metrics.get_histogram_avg("missing") is None

    def test_export_and_reset(self):
        self.metrics.inc_counter("errors_total", sink="audit")
        self.metrics.inc_counter("events_dropped_total")
        self.metrics.observe("decision_latency_ms", 2.0)

        exported = self.metrics.export()
        assert exported["counters"]["errors_total"] == {"sink=audit": 1.0}
        assert exported["counters"]["events_dropped_total"] == {"_total": 1.0}
        assert exported["histograms"]["decision_latency_ms"] == {"count": 1, "sum": 2.0}

        self.metrics.reset()
        assert self.metrics.export() == {"counters": {}, "gauges": {}, "histograms": {}}
