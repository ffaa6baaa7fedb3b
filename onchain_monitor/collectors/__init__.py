"""Collectors — reserve polling and event subscription."""

from onchain_monitor.collectors.dedup import DedupCache
from onchain_monitor.collectors.events import EventCollector
from onchain_monitor.collectors.polling import PollingCollector
from onchain_monitor.collectors.types import CollectorStatus

__all__ = [
    "CollectorStatus",
    "DedupCache",
    "EventCollector",
    "PollingCollector",
]
