"""Audit trail records."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

GENESIS_HASH = "0" * 64


class AuditEntry(BaseModel):
    """One link in the hash chain.

    ``hash`` covers ``timestamp``, ``action``, ``details`` and
    ``previous_hash``; entries are never rewritten once persisted.
    """

    model_config = ConfigDict(frozen=True)

    timestamp: float
    action: str
    details: dict[str, Any] = Field(default_factory=dict)
    hash: str
    previous_hash: str


class AuditVerification(BaseModel):
    """Result of replaying the persisted chain."""

    valid: bool
    errors: list[str] = Field(default_factory=list)
    entries: int = 0
