"""Chain data access — reserve reads, event decoding, JSON-RPC source."""

from onchain_monitor.chain.events import (
    EVENT_SIGNATURES,
    SIGNATURES_BY_TYPE,
    classify,
    decode_event,
    event_key,
)
from onchain_monitor.chain.exceptions import (
    ChainConnectionError,
    ChainDecodeError,
    ChainError,
    ChainRpcError,
)
from onchain_monitor.chain.reserves import (
    parse_reserve_state,
    ray_to_percent,
    to_token_units,
    utilization_rate,
)
from onchain_monitor.chain.rpc import JsonRpcChainSource
from onchain_monitor.chain.source import (
    ChainSource,
    LogBatchCallback,
    SubscriptionErrorCallback,
    Unsubscribe,
)
from onchain_monitor.chain.types import (
    BorrowEvent,
    ChainEvent,
    EventKey,
    EventType,
    FlashLoanEvent,
    LiquidationCallEvent,
    RawLog,
    RepayEvent,
    ReserveSnapshot,
    ReserveToken,
    SupplyEvent,
    WithdrawEvent,
)

__all__ = [
    "EVENT_SIGNATURES",
    "SIGNATURES_BY_TYPE",
    "BorrowEvent",
    "ChainConnectionError",
    "ChainDecodeError",
    "ChainError",
    "ChainEvent",
    "ChainRpcError",
    "ChainSource",
    "EventKey",
    "EventType",
    "FlashLoanEvent",
    "JsonRpcChainSource",
    "LiquidationCallEvent",
    "LogBatchCallback",
    "RawLog",
    "RepayEvent",
    "ReserveSnapshot",
    "ReserveToken",
    "SubscriptionErrorCallback",
    "SupplyEvent",
    "Unsubscribe",
    "WithdrawEvent",
    "classify",
    "decode_event",
    "event_key",
    "parse_reserve_state",
    "ray_to_percent",
    "to_token_units",
    "utilization_rate",
]
