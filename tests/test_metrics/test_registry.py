"""Tests for MetricRegistry — gauges, counters, histograms, default labels."""

from __future__ import annotations

import pytest

from onchain_monitor.metrics import MetricRegistry, MetricSink


class TestGauges:
    def test_set_and_read(self, registry: MetricRegistry) -> None:
        registry.set_gauge("aave_utilization_rate", {"asset": "DAI"}, 85.5)
        assert registry.gauge("aave_utilization_rate", {"asset": "DAI"}) == 85.5

    def test_latest_value_wins(self, registry: MetricRegistry) -> None:
        registry.set_gauge("g", {}, 1)
        registry.set_gauge("g", {}, 2)
        assert registry.gauge("g") == 2.0

    def test_unset_gauge_is_none(self, registry: MetricRegistry) -> None:
        assert registry.gauge("missing") is None

    def test_labels_distinguish_series(self, registry: MetricRegistry) -> None:
        registry.set_gauge("g", {"asset": "DAI"}, 1)
        registry.set_gauge("g", {"asset": "USDC"}, 2)
        assert registry.gauge("g", {"asset": "DAI"}) == 1.0
        assert registry.gauge("g", {"asset": "USDC"}) == 2.0

    def test_label_order_irrelevant(self, registry: MetricRegistry) -> None:
        registry.set_gauge("g", {"a": "1", "b": "2"}, 7)
        assert registry.gauge("g", {"b": "2", "a": "1"}) == 7.0


class TestCounters:
    def test_default_increment(self, registry: MetricRegistry) -> None:
        registry.inc_counter("c", {})
        registry.inc_counter("c", {})
        assert registry.counter("c") == 2.0

    def test_delta(self, registry: MetricRegistry) -> None:
        registry.inc_counter("volume", {}, 12.5)
        assert registry.counter("volume") == 12.5

    def test_never_incremented_is_zero(self, registry: MetricRegistry) -> None:
        assert registry.counter("nope") == 0.0

    def test_negative_delta_rejected(self, registry: MetricRegistry) -> None:
        with pytest.raises(ValueError, match="cannot decrease"):
            registry.inc_counter("c", {}, -1)

    def test_counter_total_sums_label_sets(self, registry: MetricRegistry) -> None:
        registry.inc_counter("sent", {"channel": "telegram"})
        registry.inc_counter("sent", {"channel": "email"}, 2)
        assert registry.counter_total("sent") == 3.0


class TestHistograms:
    def test_observe(self, registry: MetricRegistry) -> None:
        registry.observe_histogram("h", {"event_type": "Supply"}, 0.5)
        registry.observe_histogram("h", {"event_type": "Supply"}, 1.5)
        series = registry.histogram("h", {"event_type": "Supply"})
        assert series is not None
        assert series.count == 2
        assert series.total == 2.0
        assert series.mean == 1.0

    def test_missing_histogram_is_none(self, registry: MetricRegistry) -> None:
        assert registry.histogram("h") is None

    def test_samples_bounded(self) -> None:
        registry = MetricRegistry(max_histogram_samples=3)
        for v in range(5):
            registry.observe_histogram("h", {}, v)
        series = registry.histogram("h")
        assert series is not None
        assert series.samples == [2.0, 3.0, 4.0]
        assert series.count == 5


class TestDefaultLabels:
    def test_merged_on_write_and_read(self) -> None:
        registry = MetricRegistry(default_labels={"network": "sepolia"})
        registry.set_gauge("g", {"asset": "DAI"}, 3)
        assert registry.gauge("g", {"asset": "DAI"}) == 3.0
        assert registry.gauge("g", {"asset": "DAI", "network": "sepolia"}) == 3.0


class TestSnapshotAndReset:
    def test_snapshot_groups_by_type(self, registry: MetricRegistry) -> None:
        registry.set_gauge("g", {}, 1)
        registry.inc_counter("c", {"k": "v"})
        registry.observe_histogram("h", {}, 2)
        snap = registry.snapshot()
        assert snap["gauges"] == [{"name": "g", "labels": {}, "value": 1.0}]
        assert snap["counters"] == [{"name": "c", "labels": {"k": "v"}, "value": 1.0}]
        assert snap["histograms"] == [{"name": "h", "labels": {}, "count": 1, "sum": 2.0}]

    def test_reset(self, registry: MetricRegistry) -> None:
        registry.set_gauge("g", {}, 1)
        registry.inc_counter("c", {})
        registry.reset()
        assert registry.gauge("g") is None
        assert registry.counter("c") == 0.0

    def test_satisfies_sink_protocol(self, registry: MetricRegistry) -> None:
        assert isinstance(registry, MetricSink)
