"""Pure functions that build alert keys and render alert text."""

from __future__ import annotations

import datetime
import json
from html import escape as html_escape

from onchain_monitor.alerts.types import Alert, Severity

APP_NAME = "Onchain Risk Monitor"

_SEVERITY_MARKERS: dict[Severity, str] = {
    Severity.INFO: "\U0001f7e2",      # green circle
    Severity.WARNING: "\U0001f7e1",   # yellow circle
    Severity.CRITICAL: "\U0001f534",  # red circle
}

_SEVERITY_COLORS: dict[Severity, str] = {
    Severity.INFO: "#28a745",
    Severity.WARNING: "#ffc107",
    Severity.CRITICAL: "#dc3545",
}


# ── Keys and messages ───────────────────────────────────────────


def alert_key(metric: str, labels: dict[str, str] | None = None) -> str:
    """Identity of one logical alert: the metric plus its label set."""
    if not labels:
        return metric
    return f"{metric}:{json.dumps(labels, sort_keys=True, separators=(',', ':'))}"


def _number(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


def _label_suffix(labels: dict[str, str] | None) -> str:
    if not labels:
        return ""
    return " [" + ", ".join(f"{k}={v}" for k, v in labels.items()) + "]"


def format_alert_message(
    metric: str,
    value: float,
    level: float,
    severity: Severity,
    labels: dict[str, str] | None = None,
) -> str:
    """``WARNING: utilization_rate [asset=DAI] is 85.00 (threshold: 80)``"""
    return (
        f"{severity.name}: {metric}{_label_suffix(labels)} is {value:.2f} "
        f"(threshold: {_number(level)})"
    )


def format_resolution_message(
    metric: str,
    value: float,
    previous: float,
    labels: dict[str, str] | None = None,
) -> str:
    return (
        f"RESOLVED: {metric}{_label_suffix(labels)} is now {value:.2f} "
        f"(was {previous:.2f})"
    )


def format_breaker_message(dispatches: int, cooldown_secs: float) -> str:
    return (
        f"CIRCUIT BREAKER: Too many alerts ({dispatches}+). "
        f"Pausing alerts for {cooldown_secs:.0f}s"
    )


# ── Channel rendering ───────────────────────────────────────────


def _iso(timestamp: float) -> str:
    return datetime.datetime.fromtimestamp(timestamp, datetime.UTC).isoformat()


def format_telegram_html(alert: Alert) -> str:
    """Telegram Bot API message body (HTML parse mode)."""
    marker = _SEVERITY_MARKERS.get(alert.severity, "")
    return "\n".join([
        f"{marker} <b>{APP_NAME} Alert</b>",
        "",
        f"<b>Severity:</b> {alert.severity.name}",
        f"<b>Metric:</b> {html_escape(alert.metric)}",
        f"<b>Value:</b> {alert.value:.4f}",
        f"<b>Threshold:</b> {_number(alert.threshold)}",
        f"<b>Time:</b> {_iso(alert.timestamp)}",
        "",
        f"<i>{html_escape(alert.message)}</i>",
        "",
        f"#aave #{alert.severity.label}",
    ])


def format_email_subject(alert: Alert) -> str:
    return f"[{APP_NAME}] {alert.severity.name}: {alert.metric}"


def format_email_text(alert: Alert) -> str:
    return "\n".join([
        f"{APP_NAME} Alert",
        "",
        f"Severity: {alert.severity.name}",
        f"Metric: {alert.metric}",
        f"Value: {alert.value:.4f}",
        f"Threshold: {_number(alert.threshold)}",
        f"Time: {_iso(alert.timestamp)}",
        "",
        alert.message,
    ])


def format_email_html(alert: Alert) -> str:
    color = _SEVERITY_COLORS.get(alert.severity, "#6c757d")
    return (
        "<html><body style=\"font-family: Arial, sans-serif;\">"
        f"<div style=\"background-color: {color}; color: white; padding: 16px;\">"
        f"<h2>Alert: {alert.severity.name}</h2></div>"
        "<div style=\"padding: 16px;\">"
        f"<p>Metric: <strong>{html_escape(alert.metric)}</strong></p>"
        f"<p style=\"font-size: 24px;\"><strong>{alert.value:.4f}</strong></p>"
        f"<p>Threshold: {_number(alert.threshold)}</p>"
        f"<p>Time: {_iso(alert.timestamp)}</p>"
        f"<p style=\"background-color: #f8f9fa; padding: 12px;\">{html_escape(alert.message)}</p>"
        "</div></body></html>"
    )
