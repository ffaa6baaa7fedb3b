"""Domain types for the alerting subsystem."""

from __future__ import annotations

import time
from enum import IntEnum

from pydantic import BaseModel, Field


class Severity(IntEnum):
    """Alert severity — ordered so comparisons work naturally."""

    INFO = 1
    WARNING = 2
    CRITICAL = 3

    @property
    def label(self) -> str:
        """Lower-case name used in metric labels and audit details."""
        return self.name.lower()


class AlertThreshold(BaseModel):
    """Warning/critical levels for one metric. Last write wins."""

    metric: str
    warning_level: float
    critical_level: float
    enabled: bool = True


class Alert(BaseModel):
    """An alert (or synthetic notice) ready for dispatch to channels.

    Only ``acknowledged`` changes after creation.
    """

    id: str
    severity: Severity
    metric: str
    message: str
    value: float
    threshold: float
    timestamp: float = Field(default_factory=time.time)
    acknowledged: bool = False
    key: str = ""
    labels: dict[str, str] = Field(default_factory=dict)


class AlertManagerStatus(BaseModel):
    """Read-only view for the health/status surface."""

    active_alert_count: int
    circuit_breaker_open: bool
    dispatches_in_window: int
