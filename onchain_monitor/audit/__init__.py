"""Hash-chained audit trail."""

from onchain_monitor.audit.log import AuditLog, compute_hash, normalize_details
from onchain_monitor.audit.types import GENESIS_HASH, AuditEntry, AuditVerification

__all__ = [
    "GENESIS_HASH",
    "AuditEntry",
    "AuditLog",
    "AuditVerification",
    "compute_hash",
    "normalize_details",
]
