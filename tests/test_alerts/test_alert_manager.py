"""Tests for AlertManager — severity state machine, resolution, breaker, fan-out, audit."""

from __future__ import annotations

import asyncio

import pytest

from onchain_monitor.alerts import (
    Alert,
    AlertManager,
    AlertThreshold,
    NotificationChannel,
    Severity,
    alert_key,
)
from onchain_monitor.audit import AuditLog
from onchain_monitor.metrics import MetricRegistry

UTIL = "utilization_rate"
DAI = {"asset": "DAI"}


# ── Helpers ─────────────────────────────────────────────────────


class FakeChannel(NotificationChannel):
    """In-memory channel for testing."""

    def __init__(self, name: str = "fake", fail: bool = False, result: bool = True) -> None:
        self.name = name
        self.sent: list[Alert] = []
        self._fail = fail
        self._result = result
        self.enabled = True
        self.closed = False

    async def send(self, alert: Alert) -> bool:
        if self._fail:
            raise ConnectionError("fake error")
        self.sent.append(alert)
        return self._result

    def is_enabled(self) -> bool:
        return self.enabled

    async def close(self) -> None:
        self.closed = True


class FakeClock:
    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def _threshold(metric: str = UTIL, warning: float = 80, critical: float = 95, **kw: object) -> AlertThreshold:
    return AlertThreshold(metric=metric, warning_level=warning, critical_level=critical, **kw)  # type: ignore[arg-type]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def channel() -> FakeChannel:
    return FakeChannel()


@pytest.fixture
def manager(
    audit: AuditLog, registry: MetricRegistry, channel: FakeChannel, clock: FakeClock,
) -> AlertManager:
    return AlertManager(
        audit, registry, channels=[channel], thresholds=[_threshold()], clock=clock,
    )


def _actions(audit: AuditLog) -> list[str]:
    return [e.action for e in audit.entries()]


# ── Severity transitions ────────────────────────────────────────


class TestTransitions:
    async def test_scenario_70_85_97_60(self, manager: AlertManager, channel: FakeChannel) -> None:
        key = alert_key(UTIL, DAI)

        assert await manager.check_and_alert(UTIL, 70, DAI) is None
        assert manager.get_active_alert(key) is None

        warning = await manager.check_and_alert(UTIL, 85, DAI)
        assert warning is not None
        assert warning.severity == Severity.WARNING
        assert warning.threshold == 80

        critical = await manager.check_and_alert(UTIL, 97, DAI)
        assert critical is not None
        assert critical.severity == Severity.CRITICAL
        assert critical.id != warning.id
        assert manager.get_active_alert(key) is critical
        assert critical.threshold == 95

        assert await manager.check_and_alert(UTIL, 60, DAI) is None
        assert manager.get_active_alert(key) is None

        assert len(channel.sent) == 3
        assert [a.severity for a in channel.sent] == [
            Severity.WARNING, Severity.CRITICAL, Severity.INFO,
        ]
        assert channel.sent[2].message.startswith("RESOLVED: utilization_rate")

    @pytest.mark.parametrize(
        "value, expected",
        [
            (79.99, None),
            (80, Severity.WARNING),
            (94.99, Severity.WARNING),
            (95, Severity.CRITICAL),
            (1_000, Severity.CRITICAL),
        ],
    )
    async def test_boundaries(
        self, manager: AlertManager, value: float, expected: Severity | None,
    ) -> None:
        alert = await manager.check_and_alert(UTIL, value, DAI)
        if expected is None:
            assert alert is None
        else:
            assert alert is not None
            assert alert.severity == expected

    async def test_same_severity_not_redispatched(
        self, manager: AlertManager, channel: FakeChannel,
    ) -> None:
        first = await manager.check_and_alert(UTIL, 85, DAI)
        assert await manager.check_and_alert(UTIL, 88, DAI) is None
        assert await manager.check_and_alert(UTIL, 90, DAI) is None
        assert manager.get_active_alert(alert_key(UTIL, DAI)) is first
        assert len(channel.sent) == 1

    async def test_critical_back_to_warning_creates_new_alert(
        self, manager: AlertManager, channel: FakeChannel,
    ) -> None:
        await manager.check_and_alert(UTIL, 97, DAI)
        downgraded = await manager.check_and_alert(UTIL, 85, DAI)
        assert downgraded is not None
        assert downgraded.severity == Severity.WARNING
        assert len(channel.sent) == 2

    async def test_resolution_without_active_alert_is_noop(
        self, manager: AlertManager, channel: FakeChannel, audit: AuditLog,
    ) -> None:
        await manager.check_and_alert(UTIL, 10, DAI)
        assert channel.sent == []
        assert audit.entries() == []

    async def test_exactly_one_resolution_notice(
        self, manager: AlertManager, channel: FakeChannel,
    ) -> None:
        await manager.check_and_alert(UTIL, 85, DAI)
        await manager.check_and_alert(UTIL, 50, DAI)
        await manager.check_and_alert(UTIL, 40, DAI)
        resolutions = [a for a in channel.sent if a.severity == Severity.INFO]
        assert len(resolutions) == 1

    @pytest.mark.parametrize("bad", [float("nan"), float("inf"), float("-inf")])
    async def test_non_finite_value_leaves_state_untouched(
        self, manager: AlertManager, channel: FakeChannel, audit: AuditLog, bad: float,
    ) -> None:
        first = await manager.check_and_alert(UTIL, 85, DAI)
        assert await manager.check_and_alert(UTIL, bad, DAI) is None
        assert manager.get_active_alert(alert_key(UTIL, DAI)) is first
        assert len(channel.sent) == 1
        assert _actions(audit) == ["ALERT_SENT"]
        assert audit.verify().valid

    async def test_label_sets_are_independent(
        self, manager: AlertManager, channel: FakeChannel,
    ) -> None:
        await manager.check_and_alert(UTIL, 85, {"asset": "DAI"})
        await manager.check_and_alert(UTIL, 85, {"asset": "USDC"})
        assert len(manager.active_alerts()) == 2
        await manager.check_and_alert(UTIL, 10, {"asset": "DAI"})
        assert [a.labels for a in manager.active_alerts()] == [{"asset": "USDC"}]

    async def test_message_format(self, manager: AlertManager) -> None:
        alert = await manager.check_and_alert(UTIL, 85, DAI)
        assert alert is not None
        assert alert.message == "WARNING: utilization_rate [asset=DAI] is 85.00 (threshold: 80)"
        assert alert.key == alert_key(UTIL, DAI)
        assert alert.acknowledged is False


# ── Thresholds ──────────────────────────────────────────────────


class TestThresholds:
    async def test_missing_threshold_is_noop(
        self, manager: AlertManager, channel: FakeChannel,
    ) -> None:
        assert await manager.check_and_alert("unknown_metric", 1e9) is None
        assert channel.sent == []

    async def test_disabled_threshold_is_noop(
        self, manager: AlertManager, channel: FakeChannel,
    ) -> None:
        manager.set_threshold(_threshold(enabled=False))
        assert await manager.check_and_alert(UTIL, 99, DAI) is None
        assert channel.sent == []

    async def test_set_threshold_last_write_wins_and_audited(
        self, manager: AlertManager, audit: AuditLog,
    ) -> None:
        manager.set_threshold(_threshold(warning=50, critical=60))
        manager.set_threshold(_threshold(warning=70, critical=90))
        got = manager.get_threshold(UTIL)
        assert got is not None
        assert (got.warning_level, got.critical_level) == (70, 90)
        entries = [e for e in audit.entries() if e.action == "THRESHOLD_SET"]
        assert len(entries) == 2
        assert entries[-1].details["warning_level"] == 70

    async def test_new_threshold_applies_to_next_check(self, manager: AlertManager) -> None:
        manager.set_threshold(_threshold(warning=50, critical=60))
        alert = await manager.check_and_alert(UTIL, 55, DAI)
        assert alert is not None
        assert alert.severity == Severity.WARNING

    async def test_remove_threshold(self, manager: AlertManager) -> None:
        assert manager.remove_threshold(UTIL) is True
        assert manager.remove_threshold(UTIL) is False
        assert manager.get_threshold(UTIL) is None
        assert await manager.check_and_alert(UTIL, 99, DAI) is None


# ── Acknowledgement ─────────────────────────────────────────────


class TestAcknowledge:
    async def test_acknowledge_active_alert(
        self, manager: AlertManager, audit: AuditLog,
    ) -> None:
        alert = await manager.check_and_alert(UTIL, 85, DAI)
        assert alert is not None
        assert manager.acknowledge_alert(alert.key) is True
        active = manager.get_active_alert(alert.key)
        assert active is not None
        assert active.acknowledged is True
        assert active.severity == Severity.WARNING
        assert "ALERT_ACKNOWLEDGED" in _actions(audit)

    async def test_acknowledge_unknown_key(self, manager: AlertManager, audit: AuditLog) -> None:
        assert manager.acknowledge_alert("nope") is False
        assert "ALERT_ACKNOWLEDGED" not in _actions(audit)

    async def test_acknowledged_alert_still_resolves(self, manager: AlertManager) -> None:
        alert = await manager.check_and_alert(UTIL, 85, DAI)
        assert alert is not None
        manager.acknowledge_alert(alert.key)
        await manager.check_and_alert(UTIL, 10, DAI)
        assert manager.active_alerts() == []


# ── Circuit breaker ─────────────────────────────────────────────


class TestCircuitBreaker:
    async def _raise_n(self, manager: AlertManager, n: int, start: int = 0) -> None:
        for i in range(start, start + n):
            await manager.check_and_alert(UTIL, 85, {"asset": f"A{i}"})

    async def test_eleventh_alert_opens_breaker(
        self, manager: AlertManager, channel: FakeChannel, audit: AuditLog,
    ) -> None:
        await self._raise_n(manager, 10)
        assert len(channel.sent) == 10
        assert manager.status().circuit_breaker_open is False

        await self._raise_n(manager, 1, start=10)
        assert manager.status().circuit_breaker_open is True
        assert len(channel.sent) == 11
        notice = channel.sent[-1]
        assert notice.severity == Severity.CRITICAL
        assert notice.message.startswith("CIRCUIT BREAKER")
        assert "CIRCUIT_BREAKER_OPENED" in _actions(audit)

    async def test_alerts_dropped_during_cooldown(
        self, manager: AlertManager, channel: FakeChannel, clock: FakeClock,
    ) -> None:
        await self._raise_n(manager, 11)
        clock.now += 30
        await self._raise_n(manager, 5, start=11)
        assert len(channel.sent) == 11
        # Dropped alerts are still tracked as active.
        assert manager.status().active_alert_count == 16

    async def test_dispatch_resumes_after_cooldown(
        self, manager: AlertManager, channel: FakeChannel, clock: FakeClock, audit: AuditLog,
    ) -> None:
        await self._raise_n(manager, 11)
        clock.now += 60
        await self._raise_n(manager, 1, start=11)
        assert len(channel.sent) == 12
        assert channel.sent[-1].labels == {"asset": "A11"}
        status = manager.status()
        assert status.circuit_breaker_open is False
        assert status.dispatches_in_window == 1
        assert "CIRCUIT_BREAKER_CLOSED" in _actions(audit)

    async def test_window_rolls_without_tripping(
        self, manager: AlertManager, channel: FakeChannel, clock: FakeClock,
    ) -> None:
        await self._raise_n(manager, 10)
        clock.now += 61
        await self._raise_n(manager, 10, start=10)
        assert len(channel.sent) == 20
        assert manager.status().circuit_breaker_open is False

    async def test_resolutions_count_against_window(
        self, manager: AlertManager, channel: FakeChannel,
    ) -> None:
        await self._raise_n(manager, 5)
        for i in range(5):
            await manager.check_and_alert(UTIL, 10, {"asset": f"A{i}"})
        assert len(channel.sent) == 10
        await self._raise_n(manager, 1, start=5)
        assert manager.status().circuit_breaker_open is True


# ── Fan-out ─────────────────────────────────────────────────────


class TestFanOut:
    async def test_failing_channel_does_not_block_others(
        self, audit: AuditLog, registry: MetricRegistry, clock: FakeClock,
    ) -> None:
        good = FakeChannel("good")
        bad = FakeChannel("bad", fail=True)
        manager = AlertManager(audit, registry, channels=[bad, good], thresholds=[_threshold()], clock=clock)

        await manager.check_and_alert(UTIL, 85, DAI)

        assert len(good.sent) == 1
        assert registry.counter("alerts_sent_total", {"channel": "good", "severity": "warning"}) == 1
        assert registry.counter("alerts_failed_total", {"channel": "bad", "severity": "warning"}) == 1
        assert registry.counter("alerts_failed_total", {"channel": "good", "severity": "warning"}) == 0

    async def test_false_result_counted_as_failure(
        self, audit: AuditLog, registry: MetricRegistry, clock: FakeClock,
    ) -> None:
        ch = FakeChannel("flaky", result=False)
        manager = AlertManager(audit, registry, channels=[ch], thresholds=[_threshold()], clock=clock)
        await manager.check_and_alert(UTIL, 97, DAI)
        assert registry.counter("alerts_failed_total", {"channel": "flaky", "severity": "critical"}) == 1

    async def test_disabled_channel_skipped(
        self, audit: AuditLog, registry: MetricRegistry, clock: FakeClock,
    ) -> None:
        off = FakeChannel("off")
        off.enabled = False
        manager = AlertManager(audit, registry, channels=[off], thresholds=[_threshold()], clock=clock)
        await manager.check_and_alert(UTIL, 85, DAI)
        assert off.sent == []
        assert registry.counter_total("alerts_sent_total") == 0

    async def test_channels_sent_concurrently(
        self, audit: AuditLog, registry: MetricRegistry, clock: FakeClock,
    ) -> None:
        started: list[str] = []
        release = asyncio.Event()

        class SlowChannel(FakeChannel):
            async def send(self, alert: Alert) -> bool:
                started.append(self.name)
                await release.wait()
                return True

        a, b = SlowChannel("a"), SlowChannel("b")
        manager = AlertManager(audit, registry, channels=[a, b], thresholds=[_threshold()], clock=clock)
        task = asyncio.create_task(manager.check_and_alert(UTIL, 85, DAI))
        for _ in range(100):
            if len(started) == 2:
                break
            await asyncio.sleep(0)
        assert sorted(started) == ["a", "b"]
        release.set()
        await task

    async def test_triggered_counter(self, manager: AlertManager, registry: MetricRegistry) -> None:
        await manager.check_and_alert(UTIL, 97, DAI)
        assert registry.counter("alerts_triggered_total", {"severity": "critical", "metric": UTIL}) == 1

    async def test_works_without_channels(self, audit: AuditLog, registry: MetricRegistry) -> None:
        manager = AlertManager(audit, registry, thresholds=[_threshold()])
        alert = await manager.check_and_alert(UTIL, 85, DAI)
        assert alert is not None
        assert "ALERT_SENT" in _actions(audit)


# ── Audit and status ────────────────────────────────────────────


class TestAuditAndStatus:
    async def test_scenario_audit_trail(self, manager: AlertManager, audit: AuditLog) -> None:
        for value in (70, 85, 97, 60):
            await manager.check_and_alert(UTIL, value, DAI)
        assert _actions(audit) == ["ALERT_SENT", "ALERT_SENT", "ALERT_RESOLVED", "ALERT_SENT"]
        sent = audit.entries()[0].details
        assert sent["severity"] == "warning"
        assert sent["channels"] == {"fake": True}
        assert audit.verify().valid

    async def test_status(self, manager: AlertManager) -> None:
        status = manager.status()
        assert status.active_alert_count == 0
        assert status.circuit_breaker_open is False
        assert status.dispatches_in_window == 0

        await manager.check_and_alert(UTIL, 85, DAI)
        status = manager.status()
        assert status.active_alert_count == 1
        assert status.dispatches_in_window == 1

    async def test_close_closes_channels(self, manager: AlertManager, channel: FakeChannel) -> None:
        await manager.close()
        assert channel.closed is True
