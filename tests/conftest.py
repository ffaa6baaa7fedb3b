"""Shared fixtures: a temp-file audit log and an in-memory metric registry."""

from __future__ import annotations

from pathlib import Path

import pytest

from onchain_monitor.audit import AuditLog
from onchain_monitor.core.config import reset_settings
from onchain_monitor.metrics import MetricRegistry


@pytest.fixture(autouse=True)
def _clean_settings() -> None:
    reset_settings()


@pytest.fixture
def audit_path(tmp_path: Path) -> Path:
    return tmp_path / "audit.jsonl"


@pytest.fixture
def audit(audit_path: Path) -> AuditLog:
    return AuditLog(audit_path)


@pytest.fixture
def registry() -> MetricRegistry:
    return MetricRegistry()
