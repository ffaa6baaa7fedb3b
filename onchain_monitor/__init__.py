"""Onchain risk monitor — reserve/event collectors, alerting, and audit trail."""

__version__ = "0.1.0"
