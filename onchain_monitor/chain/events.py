"""Classify and decode raw pool log records into ChainEvent variants.

Classification is a lookup of ``topics[0]`` in a fixed signature table;
each known type has one decoder that reads indexed parameters from the
topics and the remaining parameters from 32-byte ABI data words.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from onchain_monitor.chain.exceptions import ChainDecodeError
from onchain_monitor.chain.types import (
    BorrowEvent,
    ChainEvent,
    EventKey,
    EventType,
    FlashLoanEvent,
    LiquidationCallEvent,
    RawLog,
    RepayEvent,
    SupplyEvent,
    WithdrawEvent,
)

# keccak256 topic0 → event type (Aave V3 Pool).
EVENT_SIGNATURES: dict[str, EventType] = {
    "0xefefaba5e921573100900a3ad9cf29f222d995fb3b6045797eaea7521bd8d6f0": EventType.FLASH_LOAN,
    "0xe413a321e8681d831f4dbccbca790d2952b56f977908e45be37335533e005286": EventType.LIQUIDATION_CALL,
    "0x2b627736bca15cd5381dcf80b0bf11fd197d01a037c52b927a881a10fb73ba61": EventType.SUPPLY,
    "0xb3d084820fb1a9decffb176436bd02558d15fac9b0ddfed8c465bc7359d7dce0": EventType.BORROW,
    "0x3115d1449a7b732c986cba18244e897a450f61e1bb8d589cd2e69e6c8924f9f7": EventType.WITHDRAW,
    "0xa534c8dbe71f871f9f3530e97a74601fea17b426cae02e1c5aee42c96c784051": EventType.REPAY,
}

SIGNATURES_BY_TYPE: dict[EventType, str] = {v: k for k, v in EVENT_SIGNATURES.items()}


# ── Primitive helpers ───────────────────────────────────────────


def to_int(value: Any) -> int:
    """Accept ints, ``0x``-prefixed hex strings, or decimal strings."""
    if isinstance(value, bool):
        raise ChainDecodeError(f"Expected integer, got bool {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            if value.lower().startswith("0x"):
                return int(value, 16)
            return int(value)
        except ValueError as exc:
            raise ChainDecodeError(f"Invalid integer {value!r}") from exc
    raise ChainDecodeError(f"Expected integer, got {type(value).__name__}")


def _strip_hex(value: str) -> str:
    return value[2:] if value.lower().startswith("0x") else value


def data_words(data: str | None) -> list[str]:
    """Split ABI-encoded data into 64-hex-char words."""
    body = _strip_hex(data or "")
    if len(body) % 64:
        raise ChainDecodeError(f"Data length {len(body)} is not a multiple of 32 bytes")
    return [body[i:i + 64] for i in range(0, len(body), 64)]


def word_to_address(word: str) -> str:
    return "0x" + _strip_hex(word)[-40:].lower()


def word_to_int(word: str) -> int:
    return int(_strip_hex(word), 16)


def word_to_bool(word: str) -> bool:
    return word_to_int(word) != 0


def event_key(raw: RawLog) -> EventKey:
    """``(transactionHash, logIndex)`` identity of a raw record."""
    tx_hash = raw.get("transactionHash")
    log_index = raw.get("logIndex")
    if not tx_hash or log_index is None:
        raise ChainDecodeError("Log record is missing transactionHash or logIndex")
    return str(tx_hash).lower(), to_int(log_index)


def classify(raw: RawLog) -> EventType | None:
    """Event type for a raw record, or None for unknown signatures."""
    topics = raw.get("topics") or []
    if not topics:
        return None
    return EVENT_SIGNATURES.get(str(topics[0]).lower())


# ── Decoders ────────────────────────────────────────────────────


def _require(topics: list[str], words: list[str], n_topics: int, n_words: int) -> None:
    if len(topics) < n_topics or len(words) < n_words:
        raise ChainDecodeError(
            f"Expected {n_topics} topics / {n_words} data words, "
            f"got {len(topics)} / {len(words)}"
        )


def _flash_loan(base: dict[str, Any], topics: list[str], words: list[str]) -> ChainEvent:
    _require(topics, words, 3, 4)
    return FlashLoanEvent(
        **base,
        target=word_to_address(topics[1]),
        asset=word_to_address(topics[2]),
        initiator=word_to_address(words[0]),
        amount=word_to_int(words[1]),
        interest_rate_mode=word_to_int(words[2]),
        premium=word_to_int(words[3]),
    )


def _liquidation(base: dict[str, Any], topics: list[str], words: list[str]) -> ChainEvent:
    _require(topics, words, 4, 4)
    return LiquidationCallEvent(
        **base,
        collateral_asset=word_to_address(topics[1]),
        debt_asset=word_to_address(topics[2]),
        user=word_to_address(topics[3]),
        debt_to_cover=word_to_int(words[0]),
        liquidated_collateral_amount=word_to_int(words[1]),
        liquidator=word_to_address(words[2]),
        receive_a_token=word_to_bool(words[3]),
    )


def _supply(base: dict[str, Any], topics: list[str], words: list[str]) -> ChainEvent:
    _require(topics, words, 3, 2)
    return SupplyEvent(
        **base,
        reserve=word_to_address(topics[1]),
        on_behalf_of=word_to_address(topics[2]),
        user=word_to_address(words[0]),
        amount=word_to_int(words[1]),
    )


def _borrow(base: dict[str, Any], topics: list[str], words: list[str]) -> ChainEvent:
    _require(topics, words, 3, 4)
    return BorrowEvent(
        **base,
        reserve=word_to_address(topics[1]),
        on_behalf_of=word_to_address(topics[2]),
        user=word_to_address(words[0]),
        amount=word_to_int(words[1]),
        interest_rate_mode=word_to_int(words[2]),
        borrow_rate=word_to_int(words[3]),
    )


def _withdraw(base: dict[str, Any], topics: list[str], words: list[str]) -> ChainEvent:
    _require(topics, words, 4, 1)
    return WithdrawEvent(
        **base,
        reserve=word_to_address(topics[1]),
        user=word_to_address(topics[2]),
        to=word_to_address(topics[3]),
        amount=word_to_int(words[0]),
    )


def _repay(base: dict[str, Any], topics: list[str], words: list[str]) -> ChainEvent:
    _require(topics, words, 4, 2)
    return RepayEvent(
        **base,
        reserve=word_to_address(topics[1]),
        user=word_to_address(topics[2]),
        repayer=word_to_address(topics[3]),
        amount=word_to_int(words[0]),
        use_a_tokens=word_to_bool(words[1]),
    )


_DECODERS: dict[
    EventType, Callable[[dict[str, Any], list[str], list[str]], ChainEvent]
] = {
    EventType.FLASH_LOAN: _flash_loan,
    EventType.LIQUIDATION_CALL: _liquidation,
    EventType.SUPPLY: _supply,
    EventType.BORROW: _borrow,
    EventType.WITHDRAW: _withdraw,
    EventType.REPAY: _repay,
}


def decode_event(raw: RawLog, event_type: EventType, timestamp: int) -> ChainEvent:
    """Decode a classified raw record into its ChainEvent variant."""
    tx_hash, log_index = event_key(raw)
    base: dict[str, Any] = {
        "transaction_hash": tx_hash,
        "log_index": log_index,
        "block_number": to_int(raw.get("blockNumber", 0)),
        "timestamp": timestamp,
    }
    topics = [str(t) for t in raw.get("topics") or []]
    try:
        words = data_words(raw.get("data"))
        return _DECODERS[event_type](base, topics, words)
    except ValueError as exc:
        raise ChainDecodeError(f"Malformed {event_type} log: {exc}") from exc
