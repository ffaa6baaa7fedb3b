"""Exception hierarchy for chain data access."""

from __future__ import annotations


class ChainError(Exception):
    """Base exception for all chain data errors."""


class ChainConnectionError(ChainError):
    """Transport-level failure talking to the RPC endpoint."""


class ChainRpcError(ChainError):
    """The node answered with a JSON-RPC error or an unusable result."""


class ChainDecodeError(ChainError):
    """A log record or contract return value could not be decoded."""
