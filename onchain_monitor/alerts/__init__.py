"""Alerting — threshold state machine, circuit breaker, notification channels."""

from onchain_monitor.alerts.breaker import BreakerDecision, BreakerState, CircuitBreaker
from onchain_monitor.alerts.channels import (
    EmailChannel,
    NotificationChannel,
    TelegramChannel,
)
from onchain_monitor.alerts.factory import create_alert_manager, create_channels
from onchain_monitor.alerts.formatters import alert_key
from onchain_monitor.alerts.manager import AlertManager
from onchain_monitor.alerts.types import (
    Alert,
    AlertManagerStatus,
    AlertThreshold,
    Severity,
)

__all__ = [
    "Alert",
    "AlertManager",
    "AlertManagerStatus",
    "AlertThreshold",
    "BreakerDecision",
    "BreakerState",
    "CircuitBreaker",
    "EmailChannel",
    "NotificationChannel",
    "Severity",
    "TelegramChannel",
    "alert_key",
    "create_alert_manager",
    "create_channels",
]
