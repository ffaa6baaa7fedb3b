"""The chain data source contract consumed by both collectors."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from typing import Protocol, runtime_checkable

from onchain_monitor.chain.types import RawLog, ReserveToken

# Callback types for push-based log delivery.
LogBatchCallback = Callable[[list[RawLog]], Awaitable[None] | None]
SubscriptionErrorCallback = Callable[[Exception], Awaitable[None] | None]
Unsubscribe = Callable[[], Awaitable[None] | None]


@runtime_checkable
class ChainSource(Protocol):
    """Read access to the lending pool plus a log subscription."""

    async def current_height(self) -> int: ...

    async def block_timestamp(self, height: int) -> int: ...

    async def list_reserves(self) -> list[ReserveToken]: ...

    async def reserve_state(self, address: str) -> Sequence[int]: ...

    def subscribe_events(
        self,
        contract_address: str,
        signatures: Sequence[str],
        on_batch: LogBatchCallback,
        on_error: SubscriptionErrorCallback,
    ) -> Unsubscribe: ...
