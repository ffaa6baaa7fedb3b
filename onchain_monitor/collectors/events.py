"""EventCollector — deduplicated protocol event counting from a log subscription."""

from __future__ import annotations

import asyncio
import time
from collections import deque
from collections.abc import Callable

import structlog

from onchain_monitor.alerts.manager import AlertManager
from onchain_monitor.audit import AuditLog
from onchain_monitor.chain.events import (
    EVENT_SIGNATURES,
    classify,
    decode_event,
    event_key,
    to_int,
)
from onchain_monitor.chain.reserves import to_token_units
from onchain_monitor.chain.source import ChainSource, Unsubscribe
from onchain_monitor.chain.types import (
    ChainEvent,
    EventType,
    FlashLoanEvent,
    LiquidationCallEvent,
    RawLog,
)
from onchain_monitor.collectors.dedup import DedupCache
from onchain_monitor.collectors.types import CollectorStatus
from onchain_monitor.core.config import CollectorsConfig, get_settings
from onchain_monitor.metrics import names
from onchain_monitor.metrics.sink import MetricSink

logger = structlog.stdlib.get_logger()

HOUR_SECS = 3600.0

_COUNTERS: dict[EventType, str] = {
    EventType.FLASH_LOAN: names.FLASHLOAN_COUNT,
    EventType.LIQUIDATION_CALL: names.LIQUIDATION_COUNT,
    EventType.SUPPLY: names.SUPPLY_COUNT,
    EventType.BORROW: names.BORROW_COUNT,
    EventType.WITHDRAW: names.WITHDRAW_COUNT,
    EventType.REPAY: names.REPAY_COUNT,
}

_AUDIT_ACTIONS: dict[EventType, str] = {
    EventType.FLASH_LOAN: "EVENT_FLASHLOAN",
    EventType.LIQUIDATION_CALL: "EVENT_LIQUIDATION",
    EventType.SUPPLY: "EVENT_SUPPLY",
    EventType.BORROW: "EVENT_BORROW",
    EventType.WITHDRAW: "EVENT_WITHDRAW",
    EventType.REPAY: "EVENT_REPAY",
}


class EventCollector:
    """Counts pool events delivered by ``ChainSource.subscribe_events``.

    Each raw log is identified by ``(transaction_hash, log_index)``; a key
    already in the seen-set is dropped before any other work. Keys are
    recorded only after a record is fully processed, so a record that
    failed part-way is retried if redelivered.

    Batches are processed one at a time under a lock, in arrival order.
    Batches that arrive after ``stop()`` are ignored.
    """

    name = "event"

    def __init__(
        self,
        chain: ChainSource,
        metrics: MetricSink,
        audit: AuditLog,
        alert_manager: AlertManager | None = None,
        config: CollectorsConfig | None = None,
        pool_address: str | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._chain = chain
        self._metrics = metrics
        self._audit = audit
        self._alerts = alert_manager
        self._config = config or get_settings().collectors
        self._pool_address = pool_address or get_settings().chain.pool_address
        self._clock = clock

        self._seen = DedupCache(
            capacity=self._config.dedup_capacity,
            evict_fraction=self._config.dedup_evict_fraction,
        )
        self._lock = asyncio.Lock()
        self._unsubscribe: Unsubscribe | None = None
        self._running = False
        self._healthy = False
        self._baseline_height: int | None = None
        self._last_height: int | None = None
        self._events_processed = 0
        self._error_count = 0
        self._last_error: str | None = None
        self._last_success_at: float | None = None

        # Rolling one-hour windows: (processed_at, value).
        self._flashloan_window: deque[tuple[float, float]] = deque()
        self._liquidation_window: deque[tuple[float, float]] = deque()

    # ── Properties ───────────────────────────────────────────────

    @property
    def running(self) -> bool:
        return self._running

    @property
    def healthy(self) -> bool:
        return self._healthy

    @property
    def baseline_height(self) -> int | None:
        return self._baseline_height

    @property
    def last_processed_height(self) -> int | None:
        return self._last_height

    @property
    def events_processed(self) -> int:
        return self._events_processed

    @property
    def error_count(self) -> int:
        return self._error_count

    @property
    def seen_count(self) -> int:
        return len(self._seen)

    def flashloan_volume_last_hour(self) -> float:
        self._prune_windows(self._clock())
        return sum(v for _, v in self._flashloan_window)

    def liquidation_count_last_hour(self) -> int:
        self._prune_windows(self._clock())
        return len(self._liquidation_window)

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
        """Read the baseline height and subscribe to pool events."""
        if self._running:
            logger.warning("event_collector_already_running")
            return

        try:
            self._baseline_height = await self._chain.current_height()
            self._healthy = True
        except Exception as exc:
            self._record_error(exc, stage="baseline")

        self._running = True
        self._unsubscribe = self._chain.subscribe_events(
            self._pool_address,
            list(EVENT_SIGNATURES),
            self._on_batch,
            self._on_error,
        )
        self._metrics.set_gauge(
            names.COLLECTOR_HEALTH, {"collector": self.name}, 1 if self._healthy else 0,
        )
        self._audit.append("COLLECTOR_START", {
            "collector": self.name,
            "pool_address": self._pool_address,
            "baseline_height": self._baseline_height,
        })
        logger.info(
            "event_collector_started",
            pool_address=self._pool_address,
            from_block=self._baseline_height,
        )

    async def stop(self) -> None:
        """Unsubscribe. Safe to call more than once."""
        if not self._running:
            return
        self._running = False

        unsubscribe, self._unsubscribe = self._unsubscribe, None
        if unsubscribe is not None:
            try:
                result = unsubscribe()
                if asyncio.iscoroutine(result):
                    await result
            except Exception:
                logger.exception("event_unsubscribe_error")

        self._audit.append("COLLECTOR_STOP", {
            "collector": self.name,
            "events_processed": self._events_processed,
            "errors": self._error_count,
        })
        logger.info(
            "event_collector_stopped",
            events_processed=self._events_processed,
        )

    # ── Subscription callbacks ───────────────────────────────────

    async def _on_batch(self, logs: list[RawLog]) -> None:
        if not self._running:
            logger.debug("event_batch_ignored", size=len(logs))
            return
        async with self._lock:
            if not self._running:
                return
            await self.process_batch(logs)

    def _on_error(self, exc: Exception) -> None:
        self._record_error(exc, stage="subscription")

    # ── Processing ───────────────────────────────────────────────

    async def process_batch(self, logs: list[RawLog]) -> int:
        """Process one batch of raw logs. Returns how many were new events."""
        processed = 0
        for raw in logs:
            try:
                if await self.process_log(raw):
                    processed += 1
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                self._record_error(exc, stage="record", tx_hash=raw.get("transactionHash"))

        try:
            await self._report_hourly()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.exception("hourly_alert_error")
            self._record_error(exc, stage="record")
        return processed

    async def process_log(self, raw: RawLog) -> bool:
        """Handle one raw log. Returns False for duplicates and unknown events."""
        key = event_key(raw)
        if key in self._seen:
            logger.debug("event_duplicate_skipped", tx_hash=key[0], log_index=key[1])
            return False

        event_type = classify(raw)
        if event_type is None:
            logger.debug("event_unknown_signature", topics=raw.get("topics"))
            return False

        started = time.perf_counter()
        block_number = to_int(raw.get("blockNumber"))
        timestamp = await self._chain.block_timestamp(block_number)
        event = decode_event(raw, event_type, timestamp)

        self._record_event(event)
        self._metrics.observe_histogram(
            names.EVENT_PROCESSING_DURATION,
            {"event_type": event_type.value},
            time.perf_counter() - started,
        )
        self._audit.append(_AUDIT_ACTIONS[event_type], event.model_dump(mode="json"))

        self._events_processed += 1
        self._last_height = max(self._last_height or 0, block_number)
        self._healthy = True
        self._last_success_at = self._clock()
        collector = {"collector": self.name}
        self._metrics.set_gauge(names.COLLECTOR_LAST_BLOCK, collector, self._last_height)
        self._metrics.set_gauge(names.COLLECTOR_HEALTH, collector, 1)

        self._seen.add(key)
        logger.info(
            "event_processed",
            event_type=event_type.value,
            block=block_number,
            tx_hash=event.transaction_hash,
        )
        return True

    def _record_event(self, event: ChainEvent) -> None:
        self._metrics.inc_counter(_COUNTERS[event.event_type], {})
        now = self._clock()

        if isinstance(event, FlashLoanEvent):
            volume = float(to_token_units(event.amount))
            self._metrics.inc_counter(names.FLASHLOAN_VOLUME, {}, volume)
            self._flashloan_window.append((now, volume))
        elif isinstance(event, LiquidationCallEvent):
            volume = float(to_token_units(event.debt_to_cover))
            self._metrics.inc_counter(names.LIQUIDATION_VOLUME, {}, volume)
            self._liquidation_window.append((now, 1.0))
            logger.warning(
                "liquidation_detected",
                tx_hash=event.transaction_hash,
                user=event.user,
                debt_to_cover=volume,
            )

    async def _report_hourly(self) -> None:
        if self._alerts is None:
            return
        await self._alerts.check_and_alert(
            names.ALERT_FLASHLOAN_VOLUME_HOURLY, self.flashloan_volume_last_hour(),
        )
        await self._alerts.check_and_alert(
            names.ALERT_LIQUIDATION_COUNT_HOURLY, self.liquidation_count_last_hour(),
        )

    def _prune_windows(self, now: float) -> None:
        for window in (self._flashloan_window, self._liquidation_window):
            while window and now - window[0][0] >= HOUR_SECS:
                window.popleft()

    def _record_error(self, exc: BaseException, stage: str, **context: object) -> None:
        self._error_count += 1
        self._last_error = str(exc) or type(exc).__name__
        collector = {"collector": self.name}
        self._metrics.inc_counter(names.COLLECTOR_ERRORS, collector)
        if stage != "record":
            self._healthy = False
            self._metrics.set_gauge(names.COLLECTOR_HEALTH, collector, 0)
        logger.error("event_collector_error", stage=stage, error=self._last_error, **context)
