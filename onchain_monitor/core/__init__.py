"""Core module — config, logging."""

from onchain_monitor.core.config import Settings, get_settings, load_settings, reset_settings
from onchain_monitor.core.logging import setup_logging

__all__ = [
    "Settings",
    "get_settings",
    "load_settings",
    "reset_settings",
    "setup_logging",
]
