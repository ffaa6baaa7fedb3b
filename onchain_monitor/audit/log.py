"""Append-only, hash-chained audit log persisted as JSON lines."""

from __future__ import annotations

import hashlib
import json
import math
import threading
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

import structlog

from onchain_monitor.audit.types import GENESIS_HASH, AuditEntry, AuditVerification

logger = structlog.stdlib.get_logger()


def _canonical(value: Any) -> str:
    return json.dumps(
        value, sort_keys=True, separators=(",", ":"), default=str, allow_nan=False,
    )


def _finite(value: Any) -> Any:
    """Replace NaN and infinities with their string form."""
    if isinstance(value, float) and not math.isfinite(value):
        return str(value)
    if isinstance(value, dict):
        return {k: _finite(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_finite(v) for v in value]
    return value


def normalize_details(details: dict[str, Any]) -> dict[str, Any]:
    """Return *details* exactly as it will read back from disk.

    Decimals, addresses wrapped in custom types, tuples etc. are flattened
    to their JSON form and non-finite floats become strings, so the hash
    computed at append time matches the one recomputed by ``verify()``.
    """
    return json.loads(_canonical(_finite(details)))


def compute_hash(
    timestamp: float,
    action: str,
    details: dict[str, Any],
    previous_hash: str,
) -> str:
    """SHA-256 over the canonical JSON of the four chained fields."""
    payload = _canonical({
        "timestamp": timestamp,
        "action": action,
        "details": details,
        "previous_hash": previous_hash,
    })
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class AuditLog:
    """Tamper-evident audit trail shared by every component.

    The last committed hash (the cursor) lives here and nowhere else.
    ``append`` holds a lock across hash computation, the file write and
    the cursor update, so concurrent writers always chain onto the latest
    entry.

    Usage::

        audit = AuditLog("logs/audit.jsonl")
        audit.append("COLLECTOR_START", {"collector": "polling"})
        result = audit.verify()
        assert result.valid, result.errors
    """

    def __init__(
        self,
        path: str | Path,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._path = Path(path)
        self._clock = clock
        self._lock = threading.Lock()
        self._last_hash = GENESIS_HASH
        self._count = 0
        self._load_cursor()

    # ── Properties ───────────────────────────────────────────────

    @property
    def path(self) -> Path:
        return self._path

    @property
    def last_hash(self) -> str:
        """Hash of the most recently committed entry (genesis if empty)."""
        return self._last_hash

    @property
    def entries_written(self) -> int:
        """Entries appended by this process."""
        return self._count

    # ── Writing ──────────────────────────────────────────────────

    def append(self, action: str, details: dict[str, Any] | None = None) -> AuditEntry:
        """Chain a new entry onto the log and persist it."""
        normalized = normalize_details(details or {})
        with self._lock:
            timestamp = float(self._clock())
            previous = self._last_hash
            entry = AuditEntry(
                timestamp=timestamp,
                action=action,
                details=normalized,
                hash=compute_hash(timestamp, action, normalized, previous),
                previous_hash=previous,
            )
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with open(self._path, "a", encoding="utf-8") as f:
                f.write(entry.model_dump_json() + "\n")
            self._last_hash = entry.hash
            self._count += 1

        logger.debug("audit_entry_appended", action=action, hash=entry.hash[:16])
        return entry

    # ── Reading / verification ───────────────────────────────────

    def entries(self) -> list[AuditEntry]:
        """Parse every persisted entry (malformed lines are skipped)."""
        result: list[AuditEntry] = []
        for _, line in self._read_lines():
            try:
                result.append(AuditEntry.model_validate_json(line))
            except ValueError:
                continue
        return result

    def verify(self) -> AuditVerification:
        """Replay the chain from genesis and collect every violation.

        Checks that each entry links to the running expected hash and that
        its stored hash matches one recomputed from its fields. Scanning
        never stops at the first problem.
        """
        errors: list[str] = []
        expected_previous = GENESIS_HASH
        count = 0

        for index, line in self._read_lines():
            count += 1
            try:
                entry = AuditEntry.model_validate_json(line)
            except ValueError as exc:
                errors.append(f"Unparseable entry {index}: {exc.__class__.__name__}")
                continue

            if entry.previous_hash != expected_previous:
                errors.append(
                    f"Chain broken at entry {index}: expected previous_hash "
                    f"{expected_previous[:16]}, got {entry.previous_hash[:16]}"
                )

            recomputed = compute_hash(
                entry.timestamp, entry.action, entry.details, entry.previous_hash,
            )
            if recomputed != entry.hash:
                errors.append(
                    f"Hash mismatch at entry {index}: computed {recomputed[:16]}, "
                    f"stored {entry.hash[:16]}"
                )

            expected_previous = entry.hash

        logger.info("audit_verification_completed", entries=count, errors=len(errors))
        return AuditVerification(valid=not errors, errors=errors, entries=count)

    # ── Internal ─────────────────────────────────────────────────

    def _read_lines(self) -> list[tuple[int, str]]:
        if not self._path.exists():
            return []
        with open(self._path, encoding="utf-8") as f:
            lines = [line.strip() for line in f]
        return list(enumerate(line for line in lines if line))

    def _load_cursor(self) -> None:
        """Resume the chain from the last persisted entry, if any."""
        lines = self._read_lines()
        if not lines:
            return
        try:
            last = AuditEntry.model_validate_json(lines[-1][1])
        except ValueError:
            logger.warning(
                "audit_cursor_unreadable",
                path=str(self._path),
                entries=len(lines),
            )
            return
        self._last_hash = last.hash
