"""JSON-RPC chain source over HTTP — block height, reserve reads, log polling."""

from __future__ import annotations

import asyncio
import itertools
from collections import OrderedDict
from collections.abc import Sequence
from types import TracebackType
from typing import Any

import httpx
import structlog

from onchain_monitor.chain.exceptions import (
    ChainConnectionError,
    ChainDecodeError,
    ChainRpcError,
)
from onchain_monitor.chain.events import to_int
from onchain_monitor.chain.source import (
    LogBatchCallback,
    SubscriptionErrorCallback,
    Unsubscribe,
)
from onchain_monitor.chain.types import ReserveToken
from onchain_monitor.core.config import ChainConfig, get_settings

logger = structlog.stdlib.get_logger()

# Function selectors on the pool data provider.
GET_ALL_RESERVES_TOKENS_SELECTOR = "0xb316ff89"
GET_RESERVE_DATA_SELECTOR = "0x35ea6a75"

_RESERVE_DATA_WORDS = 12
_BLOCK_CACHE_SIZE = 256


def encode_address_arg(address: str) -> str:
    """Left-pad a 20-byte address to a 32-byte ABI word (no 0x)."""
    body = address.lower().removeprefix("0x")
    if len(body) != 40:
        raise ChainDecodeError(f"Invalid address {address!r}")
    return body.rjust(64, "0")


def decode_uint_words(data: str, count: int) -> tuple[int, ...]:
    """Decode *count* leading uint256 words from an eth_call result."""
    body = data.removeprefix("0x")
    if len(body) < count * 64:
        raise ChainDecodeError(f"Expected {count} words, got {len(body) // 64}")
    return tuple(int(body[i * 64:(i + 1) * 64], 16) for i in range(count))


def decode_reserve_tokens(data: str) -> list[ReserveToken]:
    """Decode the ``(string symbol, address token)[]`` returned by the provider."""
    try:
        raw = bytes.fromhex(data.removeprefix("0x"))
    except ValueError as exc:
        raise ChainDecodeError("Reserve list is not valid hex") from exc

    def word(pos: int) -> int:
        if pos + 32 > len(raw):
            raise ChainDecodeError(f"Reserve list truncated at byte {pos}")
        return int.from_bytes(raw[pos:pos + 32], "big")

    array_pos = word(0)
    count = word(array_pos)
    base = array_pos + 32
    tokens: list[ReserveToken] = []
    for i in range(count):
        tuple_pos = base + word(base + 32 * i)
        string_pos = tuple_pos + word(tuple_pos)
        word(tuple_pos + 32)  # bounds check for the address word
        address = "0x" + raw[tuple_pos + 44:tuple_pos + 64].hex()
        length = word(string_pos)
        end = string_pos + 32 + length
        if end > len(raw):
            raise ChainDecodeError(f"Reserve symbol {i} truncated")
        try:
            symbol = raw[string_pos + 32:end].decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ChainDecodeError(f"Reserve symbol {i} is not UTF-8") from exc
        tokens.append(ReserveToken(symbol=symbol, address=address))
    return tokens


class JsonRpcChainSource:
    """ChainSource backed by an Ethereum JSON-RPC endpoint.

    Log subscriptions are emulated by polling ``eth_getLogs`` from the
    subscription height onward; each non-empty range is delivered as one
    batch, in block order.

    Usage::

        async with JsonRpcChainSource(settings.chain) as chain:
            height = await chain.current_height()
            reserves = await chain.list_reserves()
    """

    def __init__(
        self,
        config: ChainConfig | None = None,
        http: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = config or get_settings().chain
        self._http = http
        self._owns_http = http is None
        self._ids = itertools.count(1)
        self._block_times: OrderedDict[int, int] = OrderedDict()
        self._watchers: set[asyncio.Task[None]] = set()

    @property
    def connected(self) -> bool:
        return self._http is not None and not self._http.is_closed

    async def connect(self) -> None:
        if self._http is None:
            self._http = httpx.AsyncClient(
                timeout=httpx.Timeout(self._config.request_timeout_secs),
            )
            self._owns_http = True

    async def close(self) -> None:
        for task in list(self._watchers):
            task.cancel()
        if self._watchers:
            await asyncio.gather(*self._watchers, return_exceptions=True)
        self._watchers.clear()
        if self._http is not None and self._owns_http:
            await self._http.aclose()
            self._http = None

    # ── ChainSource ─────────────────────────────────────────────

    async def current_height(self) -> int:
        return to_int(await self._call("eth_blockNumber", []))

    async def block_timestamp(self, height: int) -> int:
        cached = self._block_times.get(height)
        if cached is not None:
            return cached
        block = await self._call("eth_getBlockByNumber", [hex(height), False])
        if not isinstance(block, dict) or "timestamp" not in block:
            raise ChainRpcError(f"Block {height} not found")
        timestamp = to_int(block["timestamp"])
        self._block_times[height] = timestamp
        if len(self._block_times) > _BLOCK_CACHE_SIZE:
            self._block_times.popitem(last=False)
        return timestamp

    async def list_reserves(self) -> list[ReserveToken]:
        result = await self._eth_call(
            self._config.data_provider_address, GET_ALL_RESERVES_TOKENS_SELECTOR,
        )
        return decode_reserve_tokens(result)

    async def reserve_state(self, address: str) -> Sequence[int]:
        result = await self._eth_call(
            self._config.data_provider_address,
            GET_RESERVE_DATA_SELECTOR + encode_address_arg(address),
        )
        return decode_uint_words(result, _RESERVE_DATA_WORDS)

    def subscribe_events(
        self,
        contract_address: str,
        signatures: Sequence[str],
        on_batch: LogBatchCallback,
        on_error: SubscriptionErrorCallback,
    ) -> Unsubscribe:
        task = asyncio.create_task(
            self._watch_logs(contract_address, list(signatures), on_batch, on_error),
        )
        self._watchers.add(task)
        task.add_done_callback(self._watchers.discard)

        def unsubscribe() -> None:
            task.cancel()

        return unsubscribe

    # ── Internal ────────────────────────────────────────────────

    async def _watch_logs(
        self,
        address: str,
        signatures: list[str],
        on_batch: LogBatchCallback,
        on_error: SubscriptionErrorCallback,
    ) -> None:
        next_block: int | None = None
        while True:
            try:
                head = await self.current_height()
                if next_block is None:
                    next_block = head
                if head >= next_block:
                    to_block = min(head, next_block + self._config.max_log_range - 1)
                    logs = await self._call("eth_getLogs", [{
                        "address": address,
                        "topics": [signatures],
                        "fromBlock": hex(next_block),
                        "toBlock": hex(to_block),
                    }])
                    next_block = to_block + 1
                    if logs:
                        result = on_batch(list(logs))
                        if asyncio.iscoroutine(result):
                            await result
            except asyncio.CancelledError:
                break
            except Exception as exc:
                logger.warning("log_subscription_error", error=str(exc))
                result = on_error(exc)
                if asyncio.iscoroutine(result):
                    await result

            try:
                await asyncio.sleep(self._config.log_poll_interval_secs)
            except asyncio.CancelledError:
                break

    async def _eth_call(self, to: str, data: str) -> str:
        result = await self._call("eth_call", [{"to": to, "data": data}, "latest"])
        if not isinstance(result, str):
            raise ChainRpcError("eth_call returned a non-hex result")
        return result

    async def _call(self, method: str, params: list[Any]) -> Any:
        if self._http is None:
            raise ChainConnectionError("HTTP client not connected")

        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params,
        }
        try:
            response = await self._http.post(self._config.rpc_url, json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise ChainConnectionError(
                f"{method} returned HTTP {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise ChainConnectionError(f"{method} request failed: {exc}") from exc

        try:
            body = response.json()
        except ValueError as exc:
            raise ChainDecodeError(f"{method} returned invalid JSON") from exc

        if not isinstance(body, dict):
            raise ChainRpcError(f"{method} returned a non-object response")
        if body.get("error"):
            error = body["error"]
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise ChainRpcError(f"{method} failed: {message}")
        return body.get("result")

    async def __aenter__(self) -> JsonRpcChainSource:
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

