"""Monitoring package -- metrics buffering and rule-based alerting.

Provides:
- MetricsRegistry: bounded in-memory metric series with summaries
- AlertEngine: evaluates alert rules, keeps history, dispatches notifications
- AlertRule / AlertCondition / notification actions
- ChannelNotifier: SMTP, Twilio, webhook and Slack delivery
- ResourceMonitor: periodic process memory / CPU sampling
"""

from src.monitoring.alert_engine import AlertEngine
from src.monitoring.alert_records import AlertRecord, AlertStatus, Severity
from src.monitoring.alert_rules import (
    AlertCondition,
    AlertRule,
    EmailAction,
    SlackAction,
    SmsAction,
    WebhookAction,
    default_rules,
)
from src.monitoring.errors import DispatchError, MonitoringError, RuleDefinitionError
from src.monitoring.metrics_registry import MetricsRegistry, MetricSample, MetricSummary
from src.monitoring.notifier import ChannelNotifier, Notifier
from src.monitoring.resource_monitor import ResourceMonitor

__all__ = [
    "AlertCondition",
    "AlertEngine",
    "AlertRecord",
    "AlertRule",
    "AlertStatus",
    "ChannelNotifier",
    "DispatchError",
    "EmailAction",
    "MetricSample",
    "MetricSummary",
    "MetricsRegistry",
    "MonitoringError",
    "Notifier",
    "ResourceMonitor",
    "RuleDefinitionError",
    "Severity",
    "SlackAction",
    "SmsAction",
    "WebhookAction",
    "default_rules",
]
