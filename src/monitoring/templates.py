"""Message bodies for each notification channel."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any

from src.monitoring.alert_records import SEVERITY_COLORS, AlertRecord


def format_timestamp(timestamp_ms: int) -> str:
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc).isoformat()


def _pretty(data: Any) -> str:
    return json.dumps(data, indent=2, sort_keys=True, default=str)


def email_subject(record: AlertRecord) -> str:
    return f"[{record.severity.value.upper()}] Alert: {record.rule_name}"


def email_body(record: AlertRecord) -> str:
    return f"""
    <html>
    <body style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
        <div style="background: #f44336; color: white; padding: 16px; border-radius: 4px 4px 0 0;">
            <h2 style="margin: 0;">System Alert: {record.rule_name}</h2>
        </div>
        <div style="padding: 16px; border: 1px solid #ddd; border-top: none; border-radius: 0 0 4px 4px;">
            <table style="width: 100%; border-collapse: collapse;">
                <tr><td style="padding: 8px; font-weight: bold;">Rule</td>
                <td style="padding: 8px;">{record.rule_name}</td></tr>
                <tr><td style="padding: 8px; font-weight: bold;">Severity</td>
                <td style="padding: 8px;">{record.severity.value.upper()}</td></tr>
                <tr><td style="padding: 8px; font-weight: bold;">Time</td>
                <td style="padding: 8px;">{format_timestamp(record.timestamp)}</td></tr>
                <tr><td style="padding: 8px; font-weight: bold;">Alert ID</td>
                <td style="padding: 8px;">{record.id}</td></tr>
            </table>
            <pre style="background: #f5f5f5; padding: 12px; border-radius: 4px;">{_pretty(record.data)}</pre>
        </div>
        <p style="font-size: 11px; color: #999; text-align: center;">Generated by the Volunteer App monitoring system</p>
    </body>
    </html>
    """


def sms_body(record: AlertRecord) -> str:
    return (
        f"Alert: {record.rule_name}\n"
        f"Severity: {record.severity.value}\n"
        f"Time: {format_timestamp(record.timestamp)}"
    )


def webhook_payload(record: AlertRecord) -> dict[str, Any]:
    return {
        "alert": {
            "id": record.id,
            "rule_name": record.rule_name,
            "severity": record.severity.value,
            "timestamp": record.timestamp,
            "data": record.data,
        }
    }


def slack_payload(record: AlertRecord) -> dict[str, Any]:
    return {
        "text": f"Alert: {record.rule_name}",
        "attachments": [
            {
                "color": SEVERITY_COLORS[record.severity],
                "fields": [
                    {"title": "Rule", "value": record.rule_name, "short": True},
                    {
                        "title": "Severity",
                        "value": record.severity.value.upper(),
                        "short": True,
                    },
                    {
                        "title": "Time",
                        "value": format_timestamp(record.timestamp),
                        "short": True,
                    },
                    {"title": "Data", "value": _pretty(record.data), "short": False},
                ],
            }
        ],
    }
