"""Metric names published by the monitor."""

from __future__ import annotations

# Reserve gauges, labelled by asset symbol.
TOTAL_LIQUIDITY = "aave_total_liquidity"
TOTAL_DEBT = "aave_total_debt"
UTILIZATION_RATE = "aave_utilization_rate"
LIQUIDITY_RATE = "aave_liquidity_rate"
VARIABLE_BORROW_RATE = "aave_variable_borrow_rate"
STABLE_BORROW_RATE = "aave_stable_borrow_rate"

# Event counters.
FLASHLOAN_COUNT = "aave_flashloan_total"
FLASHLOAN_VOLUME = "aave_flashloan_volume_total"
LIQUIDATION_COUNT = "aave_liquidation_total"
LIQUIDATION_VOLUME = "aave_liquidation_volume_total"
SUPPLY_COUNT = "aave_supply_total"
BORROW_COUNT = "aave_borrow_total"
WITHDRAW_COUNT = "aave_withdraw_total"
REPAY_COUNT = "aave_repay_total"

# Collector health, labelled by collector.
COLLECTOR_HEALTH = "collector_health"
COLLECTOR_LAST_BLOCK = "collector_last_block_processed"
COLLECTOR_ERRORS = "collector_errors_total"

# Alerting.
ALERTS_TRIGGERED = "alerts_triggered_total"
ALERTS_SENT = "alerts_sent_total"
ALERTS_FAILED = "alerts_failed_total"

EVENT_PROCESSING_DURATION = "event_processing_duration_seconds"

# Alert-manager metric keys (thresholds are configured against these).
ALERT_UTILIZATION_RATE = "utilization_rate"
ALERT_FLASHLOAN_VOLUME_HOURLY = "flashloan_volume_hourly"
ALERT_LIQUIDATION_COUNT_HOURLY = "liquidation_count_hourly"
ALERT_COLLECTOR_FAILURES = "collector_consecutive_failures"
