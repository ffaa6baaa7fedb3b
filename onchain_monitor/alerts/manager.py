"""AlertManager — per-key threshold state machine with a dispatch circuit breaker."""

from __future__ import annotations

import asyncio
import math
import time
import uuid
from collections.abc import Callable, Iterable

import structlog

from onchain_monitor.alerts.breaker import BreakerDecision, CircuitBreaker
from onchain_monitor.alerts.channels import NotificationChannel
from onchain_monitor.alerts.formatters import (
    alert_key,
    format_alert_message,
    format_breaker_message,
    format_resolution_message,
)
from onchain_monitor.alerts.types import (
    Alert,
    AlertManagerStatus,
    AlertThreshold,
    Severity,
)
from onchain_monitor.audit import AuditLog
from onchain_monitor.metrics import names
from onchain_monitor.metrics.sink import MetricSink

logger = structlog.get_logger(__name__)

BREAKER_METRIC = "circuit_breaker"


def _new_alert_id() -> str:
    return f"alert-{uuid.uuid4().hex[:12]}"


class AlertManager:
    """Turns metric values into alerts and dispatches them to channels.

    Each ``(metric, labels)`` key is Resolved (absent from the active
    table), Warning or Critical. A new alert is created and dispatched
    only when the severity for a key changes; dropping below the warning
    level resolves the key and dispatches a one-off info notice.

    Dispatch goes through a ``CircuitBreaker``: once the per-window cap is
    reached a single critical breaker notice replaces the alert and
    everything else is dropped until the cooldown has elapsed.

    Table mutations happen before the first ``await`` in every call, so
    concurrent callers on the same loop never interleave mid-transition.
    """

    def __init__(
        self,
        audit: AuditLog,
        metrics: MetricSink,
        channels: list[NotificationChannel] | None = None,
        thresholds: Iterable[AlertThreshold] | None = None,
        max_dispatches: int = 10,
        window_secs: float = 60.0,
        cooldown_secs: float = 60.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._audit = audit
        self._metrics = metrics
        self._channels: list[NotificationChannel] = channels or []
        self._clock = clock
        self._max_dispatches = max_dispatches
        self._breaker = CircuitBreaker(
            max_dispatches=max_dispatches,
            window_secs=window_secs,
            cooldown_secs=cooldown_secs,
        )
        self._thresholds: dict[str, AlertThreshold] = {
            t.metric: t for t in (thresholds or [])
        }
        self._active: dict[str, Alert] = {}

    # ── Thresholds ──────────────────────────────────────────────

    def set_threshold(self, threshold: AlertThreshold) -> None:
        """Install or replace the threshold for ``threshold.metric``."""
        self._thresholds[threshold.metric] = threshold
        self._audit.append("THRESHOLD_SET", threshold.model_dump())
        logger.info(
            "threshold_set",
            metric=threshold.metric,
            warning=threshold.warning_level,
            critical=threshold.critical_level,
            enabled=threshold.enabled,
        )

    def get_threshold(self, metric: str) -> AlertThreshold | None:
        return self._thresholds.get(metric)

    def remove_threshold(self, metric: str) -> bool:
        removed = self._thresholds.pop(metric, None)
        if removed is not None:
            self._audit.append("THRESHOLD_REMOVED", {"metric": metric})
        return removed is not None

    @property
    def thresholds(self) -> dict[str, AlertThreshold]:
        return dict(self._thresholds)

    # ── State machine ───────────────────────────────────────────

    async def check_and_alert(
        self,
        metric: str,
        value: float,
        labels: dict[str, str] | None = None,
    ) -> Alert | None:
        """Evaluate *value* for *metric* and transition the key's state.

        Returns the newly created alert, or None when nothing was created
        (no threshold, unchanged severity, or a resolution). NaN and
        infinite values are ignored and leave the key untouched.
        """
        threshold = self._thresholds.get(metric)
        if threshold is None or not threshold.enabled:
            return None

        labels = dict(labels or {})
        key = alert_key(metric, labels)
        value = float(value)
        if not math.isfinite(value):
            logger.warning("alert_value_not_finite", key=key, value=str(value))
            return None

        if value >= threshold.critical_level:
            target: Severity | None = Severity.CRITICAL
            level = threshold.critical_level
        elif value >= threshold.warning_level:
            target = Severity.WARNING
            level = threshold.warning_level
        else:
            target = None
            level = threshold.warning_level

        active = self._active.get(key)

        if target is None:
            if active is not None:
                await self._resolve(key, active, value, level, labels)
            return None

        if active is not None and active.severity == target:
            return None

        alert = Alert(
            id=_new_alert_id(),
            severity=target,
            metric=metric,
            message=format_alert_message(metric, value, level, target, labels),
            value=value,
            threshold=level,
            timestamp=self._clock(),
            key=key,
            labels=labels,
        )
        self._active[key] = alert
        logger.info(
            "alert_transition",
            key=key,
            severity=target.label,
            previous=active.severity.label if active else None,
            value=value,
        )
        await self._dispatch(alert)
        return alert

    async def _resolve(
        self,
        key: str,
        active: Alert,
        value: float,
        level: float,
        labels: dict[str, str],
    ) -> None:
        del self._active[key]
        self._audit.append("ALERT_RESOLVED", {
            "alert_id": active.id,
            "key": key,
            "metric": active.metric,
            "value": value,
            "previous_value": active.value,
            "previous_severity": active.severity.label,
        })
        logger.info("alert_resolved", key=key, alert_id=active.id, value=value)

        notice = Alert(
            id=_new_alert_id(),
            severity=Severity.INFO,
            metric=active.metric,
            message=format_resolution_message(active.metric, value, active.value, labels),
            value=value,
            threshold=level,
            timestamp=self._clock(),
            key=key,
            labels=labels,
        )
        await self._dispatch(notice)

    # ── Acknowledgement ─────────────────────────────────────────

    def acknowledge_alert(self, key: str) -> bool:
        """Mark the active alert for *key* acknowledged. Returns whether found."""
        active = self._active.get(key)
        if active is None:
            return False
        active.acknowledged = True
        self._audit.append("ALERT_ACKNOWLEDGED", {
            "alert_id": active.id,
            "key": key,
            "metric": active.metric,
        })
        logger.info("alert_acknowledged", key=key, alert_id=active.id)
        return True

    # ── Read accessors ──────────────────────────────────────────

    def active_alerts(self) -> list[Alert]:
        return list(self._active.values())

    def get_active_alert(self, key: str) -> Alert | None:
        return self._active.get(key)

    def status(self) -> AlertManagerStatus:
        return AlertManagerStatus(
            active_alert_count=len(self._active),
            circuit_breaker_open=self._breaker.is_open,
            dispatches_in_window=self._breaker.dispatches_in_window(self._clock()),
        )

    @property
    def breaker(self) -> CircuitBreaker:
        return self._breaker

    # ── Dispatch path ───────────────────────────────────────────

    async def _dispatch(self, alert: Alert) -> bool:
        """Run *alert* through the breaker. Returns True if it went out."""
        now = self._clock()
        was_open = self._breaker.is_open
        decision = self._breaker.evaluate(now)

        if was_open and not self._breaker.is_open:
            self._audit.append("CIRCUIT_BREAKER_CLOSED", {})
            logger.info("circuit_breaker_closed")

        if decision == BreakerDecision.DROP:
            logger.warning(
                "alert_dropped_circuit_open",
                alert_id=alert.id,
                key=alert.key,
                severity=alert.severity.label,
                cooldown_remaining=self._breaker.cooldown_remaining(now),
            )
            return False

        if decision == BreakerDecision.TRIP:
            await self._send_breaker_notice(alert, now)
            return False

        self._metrics.inc_counter(
            names.ALERTS_TRIGGERED,
            {"severity": alert.severity.label, "metric": alert.metric},
        )
        results = await self._fan_out(alert)
        self._audit.append("ALERT_SENT", {
            "alert_id": alert.id,
            "key": alert.key,
            "metric": alert.metric,
            "severity": alert.severity.label,
            "value": alert.value,
            "threshold": alert.threshold,
            "message": alert.message,
            "channels": results,
        })
        return True

    async def _send_breaker_notice(self, suppressed: Alert, now: float) -> None:
        notice = Alert(
            id=_new_alert_id(),
            severity=Severity.CRITICAL,
            metric=BREAKER_METRIC,
            message=format_breaker_message(
                self._max_dispatches, self._breaker.cooldown_secs,
            ),
            value=float(self._max_dispatches),
            threshold=float(self._max_dispatches),
            timestamp=now,
            key=BREAKER_METRIC,
        )
        logger.error(
            "circuit_breaker_opened",
            suppressed_alert=suppressed.id,
            cooldown_secs=self._breaker.cooldown_secs,
        )
        results = await self._fan_out(notice)
        self._audit.append("CIRCUIT_BREAKER_OPENED", {
            "alert_id": notice.id,
            "suppressed_alert_id": suppressed.id,
            "suppressed_key": suppressed.key,
            "max_dispatches": self._max_dispatches,
            "cooldown_secs": self._breaker.cooldown_secs,
            "channels": results,
        })

    async def _fan_out(self, alert: Alert) -> dict[str, bool]:
        """Send to every enabled channel concurrently; one failure stays local."""
        channels = [ch for ch in self._channels if ch.is_enabled()]
        if not channels:
            return {}

        outcomes = await asyncio.gather(
            *(ch.send(alert) for ch in channels),
            return_exceptions=True,
        )

        results: dict[str, bool] = {}
        for ch, outcome in zip(channels, outcomes):
            ok = outcome is True
            if isinstance(outcome, BaseException):
                logger.error(
                    "channel_dispatch_error",
                    channel=ch.name,
                    alert_id=alert.id,
                    error=repr(outcome),
                )
            elif not ok:
                logger.warning("channel_dispatch_failed", channel=ch.name, alert_id=alert.id)
            labels = {"channel": ch.name, "severity": alert.severity.label}
            self._metrics.inc_counter(
                names.ALERTS_SENT if ok else names.ALERTS_FAILED, labels,
            )
            results[ch.name] = ok
        return results

    # ── Lifecycle ───────────────────────────────────────────────

    async def close(self) -> None:
        for ch in self._channels:
            try:
                await ch.close()
            except Exception:
                logger.exception("channel_close_error", channel=ch.name)
