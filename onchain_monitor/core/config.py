"""Pydantic settings loaded from YAML configuration."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, SecretStr

_settings: Settings | None = None

_DEFAULT_CONFIG_PATH = Path("config/settings.yaml")


class ChainConfig(BaseModel):
    """RPC endpoint and protocol contract addresses."""

    rpc_url: str = "https://eth-sepolia.g.alchemy.com/v2/demo"
    chain_id: int = 11155111
    network_name: str = "sepolia"
    pool_address: str = "0x6Ae43d3271ff6888e7Fc43Fd7321a503ff738951"
    data_provider_address: str = "0x3e9708d80f7B3e43118013075F7e95CE3AB31F31"
    request_timeout_secs: float = 30.0
    log_poll_interval_secs: float = 4.0
    max_log_range: int = 1000


class CollectorsConfig(BaseModel):
    """Polling and event collector tuning."""

    polling_interval_secs: float = 30.0
    fetch_concurrency: int = 8
    fetch_timeout_secs: float = 15.0
    dedup_capacity: int = 10_000
    dedup_evict_fraction: float = 0.10


class ThresholdConfig(BaseModel):
    """Warning/critical levels for a single metric."""

    metric: str
    warning_level: float
    critical_level: float
    enabled: bool = True


class TelegramConfig(BaseModel):
    """Telegram Bot API channel."""

    enabled: bool = False
    bot_token: SecretStr = SecretStr("")
    chat_id: str = ""
    timeout_secs: float = 10.0


class EmailConfig(BaseModel):
    """SMTP email channel."""

    enabled: bool = False
    host: str = "smtp.gmail.com"
    port: int = 587
    username: str = ""
    password: SecretStr = SecretStr("")
    from_addr: str = ""
    to_addr: str = ""
    timeout_secs: float = 10.0


def _default_thresholds() -> list[ThresholdConfig]:
    return [
        ThresholdConfig(metric="utilization_rate", warning_level=80, critical_level=95),
        ThresholdConfig(
            metric="flashloan_volume_hourly",
            warning_level=1_000_000,
            critical_level=10_000_000,
        ),
        ThresholdConfig(
            metric="liquidation_count_hourly", warning_level=10, critical_level=50,
        ),
        ThresholdConfig(
            metric="collector_consecutive_failures", warning_level=3, critical_level=10,
        ),
    ]


class AlertsConfig(BaseModel):
    """Alert manager, circuit breaker, and channel configuration."""

    max_dispatches_per_window: int = 10
    window_secs: float = 60.0
    breaker_cooldown_secs: float = 60.0
    thresholds: list[ThresholdConfig] = _default_thresholds()
    telegram: TelegramConfig = TelegramConfig()
    email: EmailConfig = EmailConfig()


class AuditConfig(BaseModel):
    """Hash-chained audit log location."""

    path: str = "logs/audit.jsonl"


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: str = "json"
    file_path: str = ""


class Settings(BaseModel):
    """Root settings container."""

    chain: ChainConfig = ChainConfig()
    collectors: CollectorsConfig = CollectorsConfig()
    alerts: AlertsConfig = AlertsConfig()
    audit: AuditConfig = AuditConfig()
    logging: LoggingConfig = LoggingConfig()


def load_settings(path: str | Path | None = None) -> Settings:
    """Load settings from a YAML file and cache globally.

    Args:
        path: Path to YAML config. Defaults to config/settings.yaml.

    Returns:
        Parsed Settings instance.
    """
    global _settings  # noqa: PLW0603

    config_path = Path(path) if path else _DEFAULT_CONFIG_PATH

    data: dict[str, Any] = {}
    if config_path.exists():
        with open(config_path) as f:
            raw = yaml.safe_load(f)
            if isinstance(raw, dict):
                data = raw

    _settings = Settings(**data)
    return _settings


def get_settings() -> Settings:
    """Return the cached settings, loading defaults if not yet loaded."""
    global _settings  # noqa: PLW0603
    if _settings is None:
        _settings = load_settings()
    return _settings


def reset_settings() -> None:
    """Reset the cached settings (useful for testing)."""
    global _settings  # noqa: PLW0603
    _settings = None
