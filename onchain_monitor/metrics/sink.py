"""The write-only metric interface every collector and the alert manager use."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

Labels = dict[str, str]


@runtime_checkable
class MetricSink(Protocol):
    """Gauge / counter / histogram writes.

    Implementations must tolerate concurrent writers; the core never reads
    values back through this interface.
    """

    def set_gauge(self, name: str, labels: Labels, value: float) -> None: ...

    def inc_counter(self, name: str, labels: Labels, delta: float = 1.0) -> None: ...

    def observe_histogram(self, name: str, labels: Labels, value: float) -> None: ...
