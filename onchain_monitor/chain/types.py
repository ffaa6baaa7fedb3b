"""Domain types for lending-pool reserves and protocol events.

Token amounts are kept as arbitrary-precision ``int`` in base units;
conversion to human units happens only when publishing metrics.
"""

from __future__ import annotations

from decimal import Decimal
from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field

# A raw log record as delivered by the node (hex-encoded JSON-RPC shape).
RawLog = dict[str, Any]

EventKey = tuple[str, int]


class ReserveToken(BaseModel):
    """A reserve listed by the pool data provider."""

    model_config = ConfigDict(frozen=True)

    symbol: str
    address: str


class ReserveSnapshot(BaseModel):
    """State of one reserve at one poll cycle. Superseded, never mutated."""

    model_config = ConfigDict(frozen=True)

    asset: str
    symbol: str
    total_liquidity: int
    total_debt: int
    utilization_rate: Decimal
    liquidity_rate: int
    variable_borrow_rate: int
    stable_borrow_rate: int
    last_update_timestamp: int
    block_number: int = 0


class EventType(StrEnum):
    """Protocol events the event collector understands."""

    FLASH_LOAN = "FlashLoan"
    LIQUIDATION_CALL = "LiquidationCall"
    SUPPLY = "Supply"
    BORROW = "Borrow"
    WITHDRAW = "Withdraw"
    REPAY = "Repay"


class _EventBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    transaction_hash: str
    log_index: int
    block_number: int
    timestamp: int

    @property
    def key(self) -> EventKey:
        """Deduplication identity."""
        return self.transaction_hash, self.log_index


class FlashLoanEvent(_EventBase):
    event_type: Literal[EventType.FLASH_LOAN] = EventType.FLASH_LOAN
    target: str
    initiator: str
    asset: str
    amount: int
    interest_rate_mode: int
    premium: int


class LiquidationCallEvent(_EventBase):
    event_type: Literal[EventType.LIQUIDATION_CALL] = EventType.LIQUIDATION_CALL
    collateral_asset: str
    debt_asset: str
    user: str
    debt_to_cover: int
    liquidated_collateral_amount: int
    liquidator: str
    receive_a_token: bool


class SupplyEvent(_EventBase):
    event_type: Literal[EventType.SUPPLY] = EventType.SUPPLY
    reserve: str
    user: str
    on_behalf_of: str
    amount: int


class BorrowEvent(_EventBase):
    event_type: Literal[EventType.BORROW] = EventType.BORROW
    reserve: str
    user: str
    on_behalf_of: str
    amount: int
    interest_rate_mode: int
    borrow_rate: int


class WithdrawEvent(_EventBase):
    event_type: Literal[EventType.WITHDRAW] = EventType.WITHDRAW
    reserve: str
    user: str
    to: str
    amount: int


class RepayEvent(_EventBase):
    event_type: Literal[EventType.REPAY] = EventType.REPAY
    reserve: str
    user: str
    repayer: str
    amount: int
    use_a_tokens: bool


ChainEvent = Annotated[
    FlashLoanEvent
    | LiquidationCallEvent
    | SupplyEvent
    | BorrowEvent
    | WithdrawEvent
    | RepayEvent,
    Field(discriminator="event_type"),
]
