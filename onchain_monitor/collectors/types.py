"""Shared collector types."""

from __future__ import annotations

from pydantic import BaseModel


class CollectorStatus(BaseModel):
    """Read-only health view exposed to the status surface."""

    name: str
    running: bool
    healthy: bool
    last_processed_height: int | None = None
    error_count: int = 0
    last_error: str | None = None
    last_success_at: float | None = None
