"""Alert history records: severity buckets, status lifecycle and the record itself."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any


class Severity(str, Enum):
    """Coarse severity bucket assigned at fire time."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class AlertStatus(str, Enum):
    """Lifecycle of a fired alert. Records start ACTIVE."""

    ACTIVE = "active"
    ACKNOWLEDGED = "acknowledged"
    RESOLVED = "resolved"


SEVERITY_COLORS: dict[Severity, str] = {
    Severity.CRITICAL: "danger",
    Severity.HIGH: "warning",
    Severity.MEDIUM: "good",
    Severity.LOW: "#36a64f",
}


def severity_for_threshold(threshold: float) -> Severity:
    """Bucket a rule by its configured threshold, not the observed value."""
    if threshold > 1000:
        return Severity.CRITICAL
    if threshold > 100:
        return Severity.HIGH
    if threshold > 10:
        return Severity.MEDIUM
    return Severity.LOW


def new_alert_id(timestamp_ms: int) -> str:
    return f"alert_{timestamp_ms}_{uuid.uuid4().hex[:13]}"


@dataclass
class AlertRecord:
    """A single fired alert, appended to the engine's history.

    Attributes:
        id: ``alert_<epoch-ms>_<random>``.
        rule_name: Name of the rule that fired (rules may be deleted later).
        timestamp: Fire time in epoch milliseconds.
        data: The raw sample that triggered the rule, kept verbatim.
        severity: Bucket derived from the rule threshold.
        status: ``active`` -> ``acknowledged`` / ``resolved``.
    """

    id: str
    rule_name: str
    timestamp: int
    data: Any
    severity: Severity
    status: AlertStatus = AlertStatus.ACTIVE
    acknowledged_by: str | None = None
    acknowledged_at: int | None = None
    resolved_by: str | None = None
    resolved_at: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "rule_name": self.rule_name,
            "timestamp": self.timestamp,
            "data": self.data,
            "severity": self.severity.value,
            "status": self.status.value,
            "acknowledged_by": self.acknowledged_by,
            "acknowledged_at": self.acknowledged_at,
            "resolved_by": self.resolved_by,
            "resolved_at": self.resolved_at,
        }
