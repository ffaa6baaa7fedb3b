"""Convenience factory for wiring the alerting stack."""

from __future__ import annotations

from onchain_monitor.alerts.channels import (
    EmailChannel,
    NotificationChannel,
    TelegramChannel,
)
from onchain_monitor.alerts.manager import AlertManager
from onchain_monitor.alerts.types import AlertThreshold
from onchain_monitor.audit import AuditLog
from onchain_monitor.core.config import AlertsConfig
from onchain_monitor.metrics.sink import MetricSink


def create_channels(config: AlertsConfig) -> list[NotificationChannel]:
    """Instantiate every channel switched on in *config*."""
    channels: list[NotificationChannel] = []

    if config.telegram.enabled:
        channels.append(TelegramChannel(config.telegram))

    if config.email.enabled:
        channels.append(EmailChannel(config.email))

    return channels


def create_alert_manager(
    config: AlertsConfig,
    audit: AuditLog,
    metrics: MetricSink,
    channels: list[NotificationChannel] | None = None,
) -> AlertManager:
    """Build an AlertManager with thresholds and breaker limits from config.

    Pass *channels* to override the configured ones (tests, dry runs).
    """
    thresholds = [
        AlertThreshold(
            metric=t.metric,
            warning_level=t.warning_level,
            critical_level=t.critical_level,
            enabled=t.enabled,
        )
        for t in config.thresholds
    ]
    return AlertManager(
        audit=audit,
        metrics=metrics,
        channels=create_channels(config) if channels is None else channels,
        thresholds=thresholds,
        max_dispatches=config.max_dispatches_per_window,
        window_secs=config.window_secs,
        cooldown_secs=config.breaker_cooldown_secs,
    )
