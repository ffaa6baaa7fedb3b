"""Metric sink interface and the in-process registry."""

from onchain_monitor.metrics.registry import HistogramSeries, MetricRegistry
from onchain_monitor.metrics.sink import Labels, MetricSink

__all__ = [
    "HistogramSeries",
    "Labels",
    "MetricRegistry",
    "MetricSink",
]
