"""Alert rule definitions for the Volunteer Ops monitoring system.

Provides:
- AlertCondition: metric path + comparison operator + threshold (+ window)
- NotificationAction variants: EmailAction, SmsAction, WebhookAction, SlackAction
- AlertRule: condition + ordered actions + throttling state
- resolve_path / compare: the pure evaluation helpers
- default_rules(): the three built-in operational rules
"""

from __future__ import annotations

import abc
import operator as _op
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Callable, ClassVar

from src.core.config import Settings
from src.monitoring import templates
from src.monitoring.alert_records import AlertRecord
from src.monitoring.errors import RuleDefinitionError
from src.monitoring.notifier import Notifier

DEFAULT_COOLDOWN_MS = 300_000
DEFAULT_MAX_TRIGGERS = 10

OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    ">": _op.gt,
    ">=": _op.ge,
    "<": _op.lt,
    "<=": _op.le,
    "==": _op.eq,
    "!=": _op.ne,
}
_ORDERING = {">", ">=", "<", "<="}


# ---------------------------------------------------------------------------
# Evaluation helpers
# ---------------------------------------------------------------------------


def resolve_path(data: Any, path: str | list[str]) -> Any | None:
    """Walk a dot-separated *path* into nested mappings.

    ``resolve_path({"a": {"b": 5}}, "a.b")`` returns ``5``.  A missing key or
    a non-mapping intermediate yields ``None``; this never raises.
    """
    keys = path.split(".") if isinstance(path, str) else path
    value = data
    for key in keys:
        if not isinstance(value, Mapping):
            return None
        value = value.get(key)
    return value


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def compare(value: Any, operator: str, threshold: float) -> bool:
    """Apply *operator* to ``(value, threshold)``.

    Unknown operators are false.  Booleans compare as ``0`` / ``1``.  An
    absent or other non-numeric value fails every ordering comparison;
    ``==`` / ``!=`` fall back to plain equality, so an absent value
    satisfies only ``!=``.
    """
    fn = OPERATORS.get(operator)
    if fn is None:
        return False
    if isinstance(value, bool):
        value = int(value)
    if operator in _ORDERING and not _is_number(value):
        return False
    return fn(value, threshold)


# ---------------------------------------------------------------------------
# Condition
# ---------------------------------------------------------------------------


@dataclass
class AlertCondition:
    """What a rule watches.

    Attributes:
        metric_path: Dot path into the sample (``"disk.free_pct"``); also the
            metric name looked up for time-windowed conditions.
        operator: One of ``>``, ``>=``, ``<``, ``<=``, ``==``, ``!=``.
        threshold: Numeric threshold; also drives severity.
        time_window_ms: When set, evaluate the registry's average of
            ``metric_path`` over this window instead of the sample value.
    """

    metric_path: str
    operator: str
    threshold: float
    time_window_ms: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "metric_path": self.metric_path,
            "operator": self.operator,
            "threshold": self.threshold,
            "time_window_ms": self.time_window_ms,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AlertCondition":
        if not isinstance(data, Mapping):
            raise RuleDefinitionError("condition must be an object")

        metric_path = data.get("metric_path") or data.get("metricPath") or data.get("metric")
        if not isinstance(metric_path, str) or not metric_path:
            raise RuleDefinitionError("condition.metric_path is required")

        operator = data.get("operator")
        if not isinstance(operator, str) or not operator:
            raise RuleDefinitionError("condition.operator is required")

        threshold = data.get("threshold")
        if not _is_number(threshold):
            raise RuleDefinitionError("condition.threshold must be a number")

        window = data.get("time_window_ms", data.get("timeWindowMillis", data.get("timeWindow")))
        if window is not None and (not _is_number(window) or window < 0):
            raise RuleDefinitionError("condition.time_window_ms must be a non-negative number")

        return cls(
            metric_path=metric_path,
            operator=operator,
            threshold=float(threshold),
            time_window_ms=int(window) if window else None,
        )


# ---------------------------------------------------------------------------
# Notification actions
# ---------------------------------------------------------------------------


class NotificationAction(abc.ABC):
    """One delivery channel attached to a rule."""

    type: ClassVar[str]

    @abc.abstractmethod
    async def dispatch(self, record: AlertRecord, notifier: Notifier) -> None:
        """Deliver *record*; raises on failure."""

    @abc.abstractmethod
    def to_dict(self) -> dict[str, Any]: ...


def _recipients(data: Mapping[str, Any], kind: str) -> list[str]:
    recipients = data.get("recipients")
    if not isinstance(recipients, list) or not all(isinstance(r, str) for r in recipients):
        raise RuleDefinitionError(f"{kind} action requires a list of recipients")
    return list(recipients)


@dataclass
class EmailAction(NotificationAction):
    recipients: list[str] = field(default_factory=list)

    type: ClassVar[str] = "email"

    async def dispatch(self, record: AlertRecord, notifier: Notifier) -> None:
        await notifier.send_email(
            self.recipients, templates.email_subject(record), templates.email_body(record)
        )

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "recipients": list(self.recipients)}


@dataclass
class SmsAction(NotificationAction):
    recipients: list[str] = field(default_factory=list)

    type: ClassVar[str] = "sms"

    async def dispatch(self, record: AlertRecord, notifier: Notifier) -> None:
        await notifier.send_sms(self.recipients, templates.sms_body(record))

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "recipients": list(self.recipients)}


@dataclass
class WebhookAction(NotificationAction):
    url: str
    auth: str | None = None

    type: ClassVar[str] = "webhook"

    async def dispatch(self, record: AlertRecord, notifier: Notifier) -> None:
        await notifier.send_webhook(self.url, templates.webhook_payload(record), self.auth)

    def to_dict(self) -> dict[str, Any]:
        # The bearer token is never echoed back.
        return {"type": self.type, "url": self.url, "has_auth": bool(self.auth)}


@dataclass
class SlackAction(NotificationAction):
    webhook_url: str

    type: ClassVar[str] = "slack"

    async def dispatch(self, record: AlertRecord, notifier: Notifier) -> None:
        await notifier.send_chat_message(self.webhook_url, templates.slack_payload(record))

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "webhook_url": self.webhook_url}


ACTION_TYPES: dict[str, type[NotificationAction]] = {
    cls.type: cls for cls in (EmailAction, SmsAction, WebhookAction, SlackAction)
}


def parse_action(data: Mapping[str, Any] | NotificationAction) -> NotificationAction:
    """Build a :class:`NotificationAction` from its JSON form."""
    if isinstance(data, NotificationAction):
        return data
    if not isinstance(data, Mapping):
        raise RuleDefinitionError("action must be an object")

    kind = data.get("type")
    if kind == "email":
        return EmailAction(recipients=_recipients(data, kind))
    if kind == "sms":
        return SmsAction(recipients=_recipients(data, kind))
    if kind == "webhook":
        url = data.get("url")
        if not isinstance(url, str) or not url:
            raise RuleDefinitionError("webhook action requires a url")
        return WebhookAction(url=url, auth=data.get("auth"))
    if kind == "slack":
        webhook_url = data.get("webhook_url") or data.get("webhookUrl")
        if not isinstance(webhook_url, str) or not webhook_url:
            raise RuleDefinitionError("slack action requires a webhook_url")
        return SlackAction(webhook_url=webhook_url)
    raise RuleDefinitionError(
        f"Unknown action type: {kind!r}. Use: {', '.join(ACTION_TYPES)}"
    )


def parse_actions(items: Any) -> list[NotificationAction]:
    if not isinstance(items, list):
        raise RuleDefinitionError("actions must be a list")
    return [parse_action(item) for item in items]


# ---------------------------------------------------------------------------
# AlertRule dataclass
# ---------------------------------------------------------------------------


@dataclass
class AlertRule:
    """A named condition + action binding with throttling state.

    Attributes:
        name: Unique identifier (e.g. ``"high_error_rate"``).
        condition: What to evaluate.
        actions: Channels notified, in order, when the rule fires.
        enabled: Runtime toggle (default ``True``).
        cooldown_ms: Minimum time between consecutive fires.
        max_triggers: Lifetime fire cap; only redefinition resets it.
        last_triggered_at: Epoch ms of the last fire (engine-owned).
        trigger_count: Number of fires so far (engine-owned).
    """

    name: str
    condition: AlertCondition
    actions: list[NotificationAction] = field(default_factory=list)
    enabled: bool = True
    cooldown_ms: int = DEFAULT_COOLDOWN_MS
    max_triggers: int = DEFAULT_MAX_TRIGGERS
    last_triggered_at: int | None = None
    trigger_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "condition": self.condition.to_dict(),
            "actions": [a.to_dict() for a in self.actions],
            "enabled": self.enabled,
            "cooldown_ms": self.cooldown_ms,
            "max_triggers": self.max_triggers,
            "last_triggered_at": self.last_triggered_at,
            "trigger_count": self.trigger_count,
        }


# ---------------------------------------------------------------------------
# Default rule set
# ---------------------------------------------------------------------------


def default_rules(settings: Settings) -> list[AlertRule]:
    """The built-in operational rules, with recipients taken from *settings*."""
    admins = settings.alert_email_list
    return [
        AlertRule(
            name="high_error_rate",
            condition=AlertCondition(
                metric_path="error_rate",
                operator=">",
                threshold=0.05,
                time_window_ms=300_000,
            ),
            actions=[
                EmailAction(recipients=admins),
                SlackAction(webhook_url=settings.slack_webhook_url),
            ],
            cooldown_ms=600_000,
            max_triggers=5,
        ),
        AlertRule(
            name="high_response_time",
            condition=AlertCondition(
                metric_path="response_time",
                operator=">",
                threshold=2000,
                time_window_ms=300_000,
            ),
            actions=[EmailAction(recipients=admins)],
            cooldown_ms=300_000,
            max_triggers=10,
        ),
        AlertRule(
            name="database_connection_error",
            condition=AlertCondition(
                metric_path="database_errors",
                operator=">",
                threshold=0,
                time_window_ms=60_000,
            ),
            actions=[
                EmailAction(recipients=admins + settings.alert_dba_list),
                SmsAction(recipients=settings.alert_sms_list),
            ],
            cooldown_ms=300_000,
            max_triggers=3,
        ),
    ]
