#!/usr/bin/env python3
"""Verify the integrity of a hash-chained audit log.

Usage::

    # Verify the file configured in config/settings.yaml
    python scripts/verify_audit.py

    # Verify an explicit file and print every entry
    python scripts/verify_audit.py --path logs/audit.jsonl --show

Exits 0 when the chain is intact, 1 when any violation is found.
"""

from __future__ import annotations

import argparse
import datetime
import sys

import structlog

from onchain_monitor.audit import AuditLog
from onchain_monitor.core.config import load_settings
from onchain_monitor.core.logging import setup_logging

logger = structlog.get_logger(__name__)


def run(args: argparse.Namespace) -> int:
    settings = load_settings(args.config)
    setup_logging(level=args.log_level, fmt="console")

    path = args.path or settings.audit.path
    audit = AuditLog(path)
    result = audit.verify()

    if args.show:
        for i, entry in enumerate(audit.entries()):
            when = datetime.datetime.fromtimestamp(entry.timestamp, datetime.UTC)
            print(f"{i:>6}  {when.isoformat()}  {entry.action:<28} {entry.hash[:16]}")

    if result.valid:
        logger.info("audit_chain_valid", path=str(path), entries=result.entries)
        return 0

    for error in result.errors:
        print(error, file=sys.stderr)
    logger.error(
        "audit_chain_invalid",
        path=str(path),
        entries=result.entries,
        violations=len(result.errors),
    )
    return 1


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Verify the integrity of the monitor's audit log.",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to settings YAML (default: config/settings.yaml)",
    )
    parser.add_argument(
        "--path",
        default=None,
        help="Audit file to verify (default: audit.path from config)",
    )
    parser.add_argument(
        "--show",
        action="store_true",
        help="Print a one-line summary of every entry",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level override: DEBUG, INFO, WARNING, ERROR",
    )
    args = parser.parse_args()

    sys.exit(run(args))


if __name__ == "__main__":
    main()
