"""PollingCollector — periodic reserve snapshots published as gauges."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable

import structlog

from onchain_monitor.alerts.manager import AlertManager
from onchain_monitor.audit import AuditLog
from onchain_monitor.chain.reserves import (
    parse_reserve_state,
    ray_to_percent,
    to_token_units,
)
from onchain_monitor.chain.source import ChainSource
from onchain_monitor.chain.types import ReserveSnapshot, ReserveToken
from onchain_monitor.collectors.types import CollectorStatus
from onchain_monitor.core.config import CollectorsConfig, get_settings
from onchain_monitor.metrics import names
from onchain_monitor.metrics.sink import MetricSink

logger = structlog.stdlib.get_logger()


class PollingCollector:
    """Snapshots every reserve once per new block height.

    ``start()`` takes an immediate snapshot and then polls every
    ``polling_interval_secs`` until ``stop()``. A cycle is skipped when the
    chain height has not advanced. Per-asset fetches run concurrently,
    bounded by ``fetch_concurrency`` and ``fetch_timeout_secs``; a failed
    asset is logged and left out of that cycle only.

    Usage::

        collector = PollingCollector(chain, registry, audit, alert_manager)
        await collector.start()
        ...
        await collector.stop()
    """

    name = "polling"

    def __init__(
        self,
        chain: ChainSource,
        metrics: MetricSink,
        audit: AuditLog,
        alert_manager: AlertManager | None = None,
        config: CollectorsConfig | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._chain = chain
        self._metrics = metrics
        self._audit = audit
        self._alerts = alert_manager
        self._config = config or get_settings().collectors
        self._clock = clock

        self._reserves: list[ReserveToken] = []
        self._snapshots: dict[str, ReserveSnapshot] = {}
        self._semaphore = asyncio.Semaphore(self._config.fetch_concurrency)

        self._task: asyncio.Task[None] | None = None
        self._running = False
        self._healthy = False
        self._last_height: int | None = None
        self._error_count = 0
        self._consecutive_failures = 0
        self._last_error: str | None = None
        self._last_success_at: float | None = None
        self._poll_count = 0

    # ── Properties ───────────────────────────────────────────────

    @property
    def running(self) -> bool:
        return self._running

    @property
    def healthy(self) -> bool:
        """False until the first successful cycle, then tracks the latest one."""
        return self._healthy

    @property
    def last_processed_height(self) -> int | None:
        return self._last_height

    @property
    def error_count(self) -> int:
        return self._error_count

    @property
    def poll_count(self) -> int:
        return self._poll_count

    @property
    def reserves(self) -> list[ReserveToken]:
        return list(self._reserves)

    @property
    def snapshots(self) -> dict[str, ReserveSnapshot]:
        """Latest snapshot per asset symbol."""
        return dict(self._snapshots)

    def status(self) -> CollectorStatus:
        return CollectorStatus(
            name=self.name,
            running=self._running,
            healthy=self._healthy,
            last_processed_height=self._last_height,
            error_count=self._error_count,
            last_error=self._last_error,
            last_success_at=self._last_success_at,
        )

    # ── Lifecycle ────────────────────────────────────────────────

    async def start(self) -> None:
        """Load reserves, snapshot immediately, then start the poll loop."""
        if self._running:
            return
        self._running = True
        self._audit.append("COLLECTOR_START", {
            "collector": self.name,
            "interval_secs": self._config.polling_interval_secs,
        })
        logger.info(
            "polling_collector_started",
            interval=self._config.polling_interval_secs,
        )
        await self.poll_once()
        if self._running:
            self._task = asyncio.create_task(self._poll_loop())

    async def stop(self) -> None:
        """Stop the poll loop. Safe to call more than once."""
        if not self._running and self._task is None:
            return
        self._running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        self._audit.append("COLLECTOR_STOP", {
            "collector": self.name,
            "polls": self._poll_count,
            "errors": self._error_count,
        })
        logger.info("polling_collector_stopped", poll_count=self._poll_count)

    async def _poll_loop(self) -> None:
        while self._running:
            try:
                await asyncio.sleep(self._config.polling_interval_secs)
            except asyncio.CancelledError:
                break

            try:
                await self.poll_once()
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception("polling_loop_error")

    # ── Poll cycle ───────────────────────────────────────────────

    async def poll_once(self) -> bool:
        """Run one cycle. Returns True if snapshots were published."""
        started = time.perf_counter()
        try:
            if not self._reserves:
                self._reserves = await self._chain.list_reserves()
                logger.info("reserves_loaded", count=len(self._reserves))

            height = await self._chain.current_height()
            if self._last_height is not None and height <= self._last_height:
                logger.debug("poll_cycle_skipped", height=height)
                return False

            snapshots = await self._fetch_all(height)

            for snapshot in snapshots:
                self._snapshots[snapshot.symbol] = snapshot
                self._publish(snapshot)
                if self._alerts is not None:
                    await self._alerts.check_and_alert(
                        names.ALERT_UTILIZATION_RATE,
                        float(snapshot.utilization_rate),
                        {"asset": snapshot.symbol},
                    )
            self._last_height = height
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            await self._record_failure(exc)
            return False

        await self._record_success(height)
        logger.info(
            "poll_cycle_completed",
            height=height,
            reserves_updated=len(snapshots),
            reserves_failed=len(self._reserves) - len(snapshots),
            duration=round(time.perf_counter() - started, 3),
        )
        return True

    async def _fetch_all(self, height: int) -> list[ReserveSnapshot]:
        results = await asyncio.gather(
            *(self._fetch_one(token, height) for token in self._reserves),
            return_exceptions=True,
        )
        snapshots: list[ReserveSnapshot] = []
        for token, result in zip(self._reserves, results):
            if isinstance(result, BaseException):
                if isinstance(result, asyncio.CancelledError):
                    raise result
                logger.warning(
                    "reserve_fetch_failed",
                    asset=token.symbol,
                    address=token.address,
                    error=repr(result),
                )
                continue
            snapshots.append(result)
        return snapshots

    async def _fetch_one(self, token: ReserveToken, height: int) -> ReserveSnapshot:
        async with self._semaphore:
            raw = await asyncio.wait_for(
                self._chain.reserve_state(token.address),
                timeout=self._config.fetch_timeout_secs,
            )
        return parse_reserve_state(token, raw, block_number=height)

    def _publish(self, snapshot: ReserveSnapshot) -> None:
        labels = {"asset": snapshot.symbol}
        gauges = {
            names.TOTAL_LIQUIDITY: to_token_units(snapshot.total_liquidity),
            names.TOTAL_DEBT: to_token_units(snapshot.total_debt),
            names.UTILIZATION_RATE: snapshot.utilization_rate,
            names.LIQUIDITY_RATE: ray_to_percent(snapshot.liquidity_rate),
            names.VARIABLE_BORROW_RATE: ray_to_percent(snapshot.variable_borrow_rate),
            names.STABLE_BORROW_RATE: ray_to_percent(snapshot.stable_borrow_rate),
        }
        for name, value in gauges.items():
            self._metrics.set_gauge(name, labels, float(value))

    # ── Health ───────────────────────────────────────────────────

    async def _record_success(self, height: int) -> None:
        recovered = self._consecutive_failures > 0
        self._healthy = True
        self._consecutive_failures = 0
        self._poll_count += 1
        self._last_success_at = self._clock()

        collector = {"collector": self.name}
        self._metrics.set_gauge(names.COLLECTOR_HEALTH, collector, 1)
        self._metrics.set_gauge(names.COLLECTOR_LAST_BLOCK, collector, height)
        if recovered and self._alerts is not None:
            await self._alerts.check_and_alert(names.ALERT_COLLECTOR_FAILURES, 0, collector)

    async def _record_failure(self, exc: Exception) -> None:
        self._healthy = False
        self._error_count += 1
        self._consecutive_failures += 1
        self._last_error = str(exc) or type(exc).__name__

        collector = {"collector": self.name}
        self._metrics.inc_counter(names.COLLECTOR_ERRORS, collector)
        self._metrics.set_gauge(names.COLLECTOR_HEALTH, collector, 0)
        logger.error(
            "poll_cycle_failed",
            error=self._last_error,
            consecutive_failures=self._consecutive_failures,
        )
        if self._alerts is not None:
            await self._alerts.check_and_alert(
                names.ALERT_COLLECTOR_FAILURES,
                self._consecutive_failures,
                collector,
            )
