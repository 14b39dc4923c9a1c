"""AlertEngine -- evaluates named alert rules and dispatches notifications.

Provides:
- Rule registry (define / replace / update / toggle / delete)
- check_alert(): cooldown, max-trigger cap, then condition evaluation
- evaluate_windowed_rules(): sweep of registry-backed rules (per request and
  on the resource monitor's timer)
- Append-only alert history with acknowledge / resolve transitions
- Sequential, per-action isolated dispatch through an injected Notifier

Missing, disabled, cooling-down and capped rules are silent no-ops that
return ``False``; action failures are logged and never abort a fire.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Mapping
from typing import Any

import structlog

from src.monitoring.alert_records import (
    AlertRecord,
    AlertStatus,
    Severity,
    new_alert_id,
    severity_for_threshold,
)
from src.monitoring.alert_rules import (
    DEFAULT_COOLDOWN_MS,
    DEFAULT_MAX_TRIGGERS,
    AlertCondition,
    AlertRule,
    NotificationAction,
    compare,
    parse_actions,
    resolve_path,
)
from src.monitoring.clock import Clock, SystemClock
from src.monitoring.errors import RuleDefinitionError
from src.monitoring.metrics_registry import MetricsRegistry
from src.monitoring.notifier import Notifier

logger = structlog.get_logger(__name__)

DEFAULT_HISTORY_LIMIT = 10_000


class AlertEngine:
    """Evaluate alert rules against arbitrary data and keep alert history.

    Parameters:
        notifier: Delivery capability used by every action.
        metrics: Registry consulted for time-windowed conditions.  Without
            one, windowed conditions evaluate against ``0``.
        clock: Epoch-millisecond time source (injected for tests).
        history_limit: Maximum records kept; the oldest are evicted.
    """

    def __init__(
        self,
        notifier: Notifier,
        metrics: MetricsRegistry | None = None,
        clock: Clock | None = None,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
    ) -> None:
        self._notifier = notifier
        self._metrics = metrics
        self._clock = clock or SystemClock()
        self._rules: dict[str, AlertRule] = {}
        self._history: deque[AlertRecord] = deque(maxlen=history_limit)
        self._logger = logger

    # ------------------------------------------------------------------
    # Rule management
    # ------------------------------------------------------------------

    def define_rule(
        self,
        name: str,
        condition: AlertCondition | Mapping[str, Any],
        actions: list[NotificationAction] | list[Mapping[str, Any]],
        *,
        enabled: bool = True,
        cooldown_ms: int = DEFAULT_COOLDOWN_MS,
        max_triggers: int = DEFAULT_MAX_TRIGGERS,
    ) -> AlertRule:
        """Insert or replace the rule called *name*.

        Replacing a rule drops its ``trigger_count`` / ``last_triggered_at``;
        redefinition is the only way to reset a capped rule.

        Raises:
            RuleDefinitionError: On an empty name or a malformed condition,
                action or throttling option.
        """
        if not isinstance(name, str) or not name:
            raise RuleDefinitionError("rule name is required")
        if not isinstance(condition, AlertCondition):
            condition = AlertCondition.from_dict(condition)
        if cooldown_ms < 0:
            raise RuleDefinitionError("cooldown_ms must be >= 0")
        if max_triggers < 0:
            raise RuleDefinitionError("max_triggers must be >= 0")

        rule = AlertRule(
            name=name,
            condition=condition,
            actions=parse_actions(actions),
            enabled=enabled,
            cooldown_ms=cooldown_ms,
            max_triggers=max_triggers,
        )
        self._rules[name] = rule
        self._logger.info(
            "alert_rule_defined",
            rule=name,
            metric_path=condition.metric_path,
            operator=condition.operator,
            threshold=condition.threshold,
        )
        return rule

    def add_rule(self, rule: AlertRule) -> AlertRule:
        """Register a pre-built rule as-is (used for the default set)."""
        self._rules[rule.name] = rule
        self._logger.info("alert_rule_defined", rule=rule.name)
        return rule

    def get_rule(self, name: str) -> AlertRule | None:
        return self._rules.get(name)

    def list_rules(self) -> list[AlertRule]:
        return list(self._rules.values())

    def update_rule(
        self,
        name: str,
        *,
        condition: AlertCondition | Mapping[str, Any] | None = None,
        actions: list[Any] | None = None,
        enabled: bool | None = None,
        cooldown_ms: int | None = None,
        max_triggers: int | None = None,
    ) -> AlertRule | None:
        """Partially update a rule in place, keeping its trigger state.

        Returns ``None`` if the rule does not exist.
        """
        rule = self._rules.get(name)
        if rule is None:
            return None

        # Validate everything before mutating so a bad field changes nothing.
        new_condition = None
        if condition is not None:
            new_condition = (
                condition
                if isinstance(condition, AlertCondition)
                else AlertCondition.from_dict(condition)
            )
        new_actions = parse_actions(actions) if actions is not None else None
        if cooldown_ms is not None and cooldown_ms < 0:
            raise RuleDefinitionError("cooldown_ms must be >= 0")
        if max_triggers is not None and max_triggers < 0:
            raise RuleDefinitionError("max_triggers must be >= 0")

        if new_condition is not None:
            rule.condition = new_condition
        if new_actions is not None:
            rule.actions = new_actions
        if enabled is not None:
            rule.enabled = enabled
        if cooldown_ms is not None:
            rule.cooldown_ms = cooldown_ms
        if max_triggers is not None:
            rule.max_triggers = max_triggers

        self._logger.info("alert_rule_updated", rule=name)
        return rule

    def delete_rule(self, name: str) -> bool:
        """Remove a rule.  Its past alert records stay in history."""
        if self._rules.pop(name, None) is None:
            return False
        self._logger.info("alert_rule_deleted", rule=name)
        return True

    def toggle_rule(self, name: str) -> bool | None:
        """Flip ``enabled``; returns the new value, or ``None`` if unknown."""
        rule = self._rules.get(name)
        if rule is None:
            return None
        rule.enabled = not rule.enabled
        self._logger.info("alert_rule_toggled", rule=name, enabled=rule.enabled)
        return rule.enabled

    def initialize_default_rules(self, rules: list[AlertRule]) -> list[str]:
        """Seed (or re-seed) *rules*, resetting their state."""
        for rule in rules:
            rule.last_triggered_at = None
            rule.trigger_count = 0
            self.add_rule(rule)
        self._logger.info("default_alert_rules_initialized", count=len(rules))
        return [r.name for r in rules]

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    async def check_alert(self, rule_name: str, data: Any) -> bool:
        """Evaluate *rule_name* against *data* and fire if it matches.

        Returns ``True`` only when the rule fired.
        """
        rule = self._rules.get(rule_name)
        if rule is None or not rule.enabled:
            return False

        now = self._clock.now_ms()
        if rule.last_triggered_at is not None and now - rule.last_triggered_at < rule.cooldown_ms:
            self._logger.debug("alert_rule_in_cooldown", rule=rule_name)
            return False

        if rule.trigger_count >= rule.max_triggers:
            self._logger.debug("alert_rule_capped", rule=rule_name, trigger_count=rule.trigger_count)
            return False

        if not self.evaluate_condition(rule.condition, data):
            return False

        await self._fire(rule, data)
        return True

    async def evaluate_windowed_rules(self) -> list[str]:
        """Check every enabled time-windowed rule against the registry.

        Windowed rules read their value from the registry, not from a
        sample, so they can be evaluated without caller data.  Returns the
        names of the rules that fired.
        """
        fired = []
        for rule in list(self._rules.values()):
            if not rule.enabled or not rule.condition.time_window_ms:
                continue
            if await self.check_alert(rule.name, {}):
                fired.append(rule.name)
        return fired

    def evaluate_condition(self, condition: AlertCondition, data: Any) -> bool:
        """Resolve the watched value and apply the operator."""
        if condition.time_window_ms:
            value = self._window_value(condition)
        else:
            value = resolve_path(data, condition.metric_path)
        return compare(value, condition.operator, condition.threshold)

    def _window_value(self, condition: AlertCondition) -> float:
        if self._metrics is None:
            return 0.0
        avg = self._metrics.window_average(condition.metric_path, condition.time_window_ms)
        return 0.0 if avg is None else avg

    async def _fire(self, rule: AlertRule, data: Any) -> AlertRecord:
        """Record a fire and dispatch every action in order."""
        now = self._clock.now_ms()
        rule.last_triggered_at = now
        rule.trigger_count += 1

        record = AlertRecord(
            id=new_alert_id(now),
            rule_name=rule.name,
            timestamp=now,
            data=data,
            severity=severity_for_threshold(rule.condition.threshold),
        )
        self._history.append(record)

        self._logger.info(
            "alert_fired",
            rule=rule.name,
            alert_id=record.id,
            severity=record.severity.value,
            trigger_count=rule.trigger_count,
        )

        for action in rule.actions:
            try:
                await action.dispatch(record, self._notifier)
            except Exception as exc:
                self._logger.error(
                    "alert_action_failed",
                    rule=rule.name,
                    alert_id=record.id,
                    action=action.type,
                    error=str(exc),
                )

        return record

    async def test_alert(self, rule_name: str) -> dict[str, Any]:
        """Force a fire with a synthetic sample, bypassing cooldown and cap."""
        rule = self._rules.get(rule_name)
        if rule is None:
            return {"success": False, "error": f"Alert rule not found: {rule_name}"}

        try:
            await self._fire(rule, {"timestamp": self._clock.now_ms(), "test": True})
        except Exception as exc:
            self._logger.error("alert_test_failed", rule=rule_name, error=str(exc))
            return {"success": False, "error": str(exc)}

        return {"success": True, "message": f"Test alert triggered for {rule_name}"}

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def get_alert(self, alert_id: str) -> AlertRecord | None:
        for record in self._history:
            if record.id == alert_id:
                return record
        return None

    def acknowledge_alert(self, alert_id: str, user_id: str | None) -> bool:
        """Mark a record acknowledged.  Any prior status may be overwritten."""
        record = self.get_alert(alert_id)
        if record is None:
            return False
        record.status = AlertStatus.ACKNOWLEDGED
        record.acknowledged_by = user_id
        record.acknowledged_at = self._clock.now_ms()
        self._logger.info("alert_acknowledged", alert_id=alert_id, user_id=user_id)
        return True

    def resolve_alert(self, alert_id: str, user_id: str | None) -> bool:
        record = self.get_alert(alert_id)
        if record is None:
            return False
        record.status = AlertStatus.RESOLVED
        record.resolved_by = user_id
        record.resolved_at = self._clock.now_ms()
        self._logger.info("alert_resolved", alert_id=alert_id, user_id=user_id)
        return True

    def get_alert_history(self, limit: int = 100) -> list[AlertRecord]:
        """Up to *limit* records, newest first."""
        history = list(self._history)
        history.reverse()
        return history[:limit]

    def get_active_alerts(self) -> list[AlertRecord]:
        return [r for r in self._history if r.status is AlertStatus.ACTIVE]

    def get_alert_stats(self) -> dict[str, Any]:
        stats: dict[str, Any] = {
            "total": len(self._history),
            "active": 0,
            "acknowledged": 0,
            "resolved": 0,
            "by_severity": {s.value: 0 for s in Severity},
        }
        for record in self._history:
            stats[record.status.value] += 1
            stats["by_severity"][record.severity.value] += 1
        return stats

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def dispose(self) -> None:
        """Drop every rule and record."""
        self._rules.clear()
        self._history.clear()
        self._logger.info("alert_engine_disposed")
