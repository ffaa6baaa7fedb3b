"""MetricRegistry — in-process MetricSink with read-back helpers.

Stores the latest gauge values, cumulative counters, and bounded histogram
samples keyed by ``(name, labels)``. The external metrics/health server
renders from :meth:`MetricRegistry.snapshot`; tests query individual
series directly.
"""

from __future__ import annotations

import threading
from collections import defaultdict
from dataclasses import dataclass, field

from onchain_monitor.metrics.sink import Labels

SeriesKey = tuple[str, tuple[tuple[str, str], ...]]


def _key(name: str, labels: Labels | None) -> SeriesKey:
    return name, tuple(sorted((labels or {}).items()))


@dataclass
class HistogramSeries:
    """Observations for a single histogram series."""

    count: int = 0
    total: float = 0.0
    samples: list[float] = field(default_factory=list)

    @property
    def mean(self) -> float:
        if self.count == 0:
            return 0.0
        return self.total / self.count


class MetricRegistry:
    """Thread-safe in-memory metric store.

    Usage::

        registry = MetricRegistry(default_labels={"network": "sepolia"})
        collector = PollingCollector(chain, registry, audit)

        registry.gauge("aave_utilization_rate", {"asset": "DAI"})
    """

    def __init__(
        self,
        default_labels: Labels | None = None,
        max_histogram_samples: int = 10_000,
    ) -> None:
        self._default_labels = dict(default_labels or {})
        self._max_histogram_samples = max_histogram_samples
        self._lock = threading.Lock()
        self._gauges: dict[SeriesKey, float] = {}
        self._counters: dict[SeriesKey, float] = defaultdict(float)
        self._histograms: dict[SeriesKey, HistogramSeries] = {}

    # ── MetricSink ──────────────────────────────────────────────

    def set_gauge(self, name: str, labels: Labels, value: float) -> None:
        with self._lock:
            self._gauges[self._series(name, labels)] = float(value)

    def inc_counter(self, name: str, labels: Labels, delta: float = 1.0) -> None:
        if delta < 0:
            raise ValueError(f"Counter {name} cannot decrease (delta={delta})")
        with self._lock:
            self._counters[self._series(name, labels)] += float(delta)

    def observe_histogram(self, name: str, labels: Labels, value: float) -> None:
        with self._lock:
            series = self._histograms.setdefault(
                self._series(name, labels), HistogramSeries(),
            )
            series.count += 1
            series.total += float(value)
            series.samples.append(float(value))
            if len(series.samples) > self._max_histogram_samples:
                series.samples = series.samples[-self._max_histogram_samples:]

    # ── Query methods ───────────────────────────────────────────

    def gauge(self, name: str, labels: Labels | None = None) -> float | None:
        """Latest gauge value, or None if never set."""
        with self._lock:
            return self._gauges.get(self._series(name, labels))

    def counter(self, name: str, labels: Labels | None = None) -> float:
        """Cumulative counter value (0 if never incremented)."""
        with self._lock:
            return self._counters.get(self._series(name, labels), 0.0)

    def histogram(self, name: str, labels: Labels | None = None) -> HistogramSeries | None:
        with self._lock:
            series = self._histograms.get(self._series(name, labels))
            if series is None:
                return None
            return HistogramSeries(
                count=series.count, total=series.total, samples=list(series.samples),
            )

    def counter_total(self, name: str) -> float:
        """Sum of a counter across all label sets."""
        with self._lock:
            return sum(v for (n, _), v in self._counters.items() if n == name)

    def snapshot(self) -> dict[str, list[dict[str, object]]]:
        """All series grouped by metric type."""
        with self._lock:
            return {
                "gauges": [
                    {"name": n, "labels": dict(lbl), "value": v}
                    for (n, lbl), v in sorted(self._gauges.items())
                ],
                "counters": [
                    {"name": n, "labels": dict(lbl), "value": v}
                    for (n, lbl), v in sorted(self._counters.items())
                ],
                "histograms": [
                    {"name": n, "labels": dict(lbl), "count": s.count, "sum": s.total}
                    for (n, lbl), s in sorted(self._histograms.items())
                ],
            }

    def reset(self) -> None:
        with self._lock:
            self._gauges.clear()
            self._counters.clear()
            self._histograms.clear()

    # ── Internal ────────────────────────────────────────────────

    def _series(self, name: str, labels: Labels | None) -> SeriesKey:
        if self._default_labels:
            merged = {**self._default_labels, **(labels or {})}
            return _key(name, merged)
        return _key(name, labels)
