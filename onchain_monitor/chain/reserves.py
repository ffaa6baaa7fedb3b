"""Reserve state parsing and fixed-point conversions."""

from __future__ import annotations

from collections.abc import Sequence
from decimal import Decimal

from onchain_monitor.chain.exceptions import ChainDecodeError
from onchain_monitor.chain.types import ReserveSnapshot, ReserveToken

WAD_DECIMALS = 18
RAY = Decimal(10) ** 27

# Field order of the data provider's getReserveData() return tuple.
_RESERVE_FIELDS = (
    "unbacked",
    "accrued_to_treasury_scaled",
    "total_a_token",
    "total_stable_debt",
    "total_variable_debt",
    "liquidity_rate",
    "variable_borrow_rate",
    "stable_borrow_rate",
    "average_stable_borrow_rate",
    "liquidity_index",
    "variable_borrow_index",
    "last_update_timestamp",
)


def to_token_units(value: int, decimals: int = WAD_DECIMALS) -> Decimal:
    """Base units → human token units."""
    return Decimal(value) / (Decimal(10) ** decimals)


def ray_to_percent(value: int) -> Decimal:
    """Ray-denominated rate (27 decimals) → percentage."""
    return Decimal(value) * 100 / RAY


def utilization_rate(total_debt: int, total_liquidity: int) -> Decimal:
    """Debt as a percentage of liquidity; 0 for an empty reserve."""
    if total_liquidity <= 0:
        return Decimal(0)
    return Decimal(total_debt) * 100 / Decimal(total_liquidity)


def parse_reserve_state(
    token: ReserveToken,
    raw: Sequence[int],
    block_number: int = 0,
) -> ReserveSnapshot:
    """Build a ReserveSnapshot from the raw 12-word reserve tuple."""
    if len(raw) < len(_RESERVE_FIELDS):
        raise ChainDecodeError(
            f"Reserve {token.symbol}: expected {len(_RESERVE_FIELDS)} fields, got {len(raw)}"
        )
    try:
        fields = {name: int(v) for name, v in zip(_RESERVE_FIELDS, raw)}
    except (TypeError, ValueError) as exc:
        raise ChainDecodeError(f"Reserve {token.symbol}: non-integer field") from exc

    total_liquidity = fields["total_a_token"]
    total_debt = fields["total_stable_debt"] + fields["total_variable_debt"]

    return ReserveSnapshot(
        asset=token.address,
        symbol=token.symbol,
        total_liquidity=total_liquidity,
        total_debt=total_debt,
        utilization_rate=utilization_rate(total_debt, total_liquidity),
        liquidity_rate=fields["liquidity_rate"],
        variable_borrow_rate=fields["variable_borrow_rate"],
        stable_borrow_rate=fields["stable_borrow_rate"],
        last_update_timestamp=fields["last_update_timestamp"],
        block_number=block_number,
    )
