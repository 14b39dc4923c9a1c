"""Tests for AlertEngine.

Verifies cooldown and max-trigger throttling with a manual clock, severity
derivation, history ordering and statistics, status transitions, per-action
failure isolation, time-windowed conditions and rule administration.
"""

from __future__ import annotations

import pytest

from src.monitoring.alert_engine import AlertEngine
from src.monitoring.alert_records import AlertStatus, Severity
from src.monitoring.alert_rules import AlertCondition, AlertRule, EmailAction
from src.monitoring.errors import RuleDefinitionError

EMAIL_OPS = [{"type": "email", "recipients": ["ops@volunteer-app.com"]}]


def _cond(path: str = "value", operator: str = ">", threshold: float = 5, **kw) -> dict:
    return {"metric_path": path, "operator": operator, "threshold": threshold, **kw}


# ---------------------------------------------------------------------------
# End-to-end scenario
# ---------------------------------------------------------------------------


class TestLowDiskScenario:
    @pytest.mark.asyncio
    async def test_fires_once_then_capped(self, engine, notifier):
        engine.define_rule(
            "low_disk",
            {"metricPath": "disk.freePct", "operator": "<", "threshold": 10},
            [{"type": "email", "recipients": ["ops@x.com"]}],
            cooldown_ms=0,
            max_triggers=1,
        )

        assert await engine.check_alert("low_disk", {"disk": {"freePct": 5}}) is True

        history = engine.get_alert_history()
        assert len(history) == 1
        record = history[0]
        assert record.severity is Severity.LOW
        assert record.status is AlertStatus.ACTIVE
        assert record.data == {"disk": {"freePct": 5}}
        emails = notifier.calls_for("email")
        assert len(emails) == 1
        assert emails[0]["recipients"] == ["ops@x.com"]
        assert "low_disk" in emails[0]["subject"]

        assert await engine.check_alert("low_disk", {"disk": {"freePct": 5}}) is False
        assert len(engine.get_alert_history()) == 1
        assert len(notifier.calls_for("email")) == 1


# ---------------------------------------------------------------------------
# Gatekeeping
# ---------------------------------------------------------------------------


class TestGatekeeping:
    @pytest.mark.asyncio
    async def test_missing_rule_is_noop(self, engine):
        assert await engine.check_alert("nope", {"value": 100}) is False

    @pytest.mark.asyncio
    async def test_disabled_rule_is_noop(self, engine, notifier):
        engine.define_rule("r", _cond(), EMAIL_OPS, enabled=False)
        assert await engine.check_alert("r", {"value": 100}) is False
        assert notifier.calls == []

    @pytest.mark.asyncio
    async def test_condition_false_does_not_fire(self, engine):
        engine.define_rule("r", _cond(), EMAIL_OPS)
        assert await engine.check_alert("r", {"value": 1}) is False
        assert engine.get_rule("r").trigger_count == 0

    @pytest.mark.asyncio
    async def test_unknown_operator_never_fires(self, engine):
        engine.define_rule("r", _cond(operator="=~"), EMAIL_OPS)
        assert await engine.check_alert("r", {"value": 100}) is False

    @pytest.mark.asyncio
    async def test_absent_path_fires_only_for_not_equal(self, engine):
        engine.define_rule("lt", _cond(path="a.b", operator="<"), [], cooldown_ms=0)
        engine.define_rule("ne", _cond(path="a.b", operator="!="), [], cooldown_ms=0)
        assert await engine.check_alert("lt", {"a": {}}) is False
        assert await engine.check_alert("ne", {"a": {}}) is True

    @pytest.mark.asyncio
    async def test_boolean_flag_fires_as_one(self, engine):
        engine.define_rule("down", _cond(path="db.down", threshold=0), [], cooldown_ms=0)
        assert await engine.check_alert("down", {"db": {"down": False}}) is False
        assert await engine.check_alert("down", {"db": {"down": True}}) is True


class TestCooldown:
    @pytest.mark.asyncio
    async def test_gap_shorter_than_cooldown_blocks(self, engine, clock):
        engine.define_rule("r", _cond(), EMAIL_OPS, cooldown_ms=60_000)

        assert await engine.check_alert("r", {"value": 10}) is True
        clock.advance(59_999)
        assert await engine.check_alert("r", {"value": 10}) is False
        assert len(engine.get_alert_history()) == 1

    @pytest.mark.asyncio
    async def test_gap_equal_to_cooldown_allows(self, engine, clock):
        engine.define_rule("r", _cond(), EMAIL_OPS, cooldown_ms=60_000)

        assert await engine.check_alert("r", {"value": 10}) is True
        clock.advance(60_000)
        assert await engine.check_alert("r", {"value": 10}) is True
        assert len(engine.get_alert_history()) == 2


class TestMaxTriggers:
    @pytest.mark.asyncio
    async def test_cap_holds_until_redefinition(self, engine):
        engine.define_rule("r", _cond(), EMAIL_OPS, cooldown_ms=0, max_triggers=3)

        results = [await engine.check_alert("r", {"value": 10}) for _ in range(10)]

        assert results.count(True) == 3
        assert len(engine.get_alert_history()) == 3
        assert engine.get_rule("r").trigger_count == 3

        engine.define_rule("r", _cond(), EMAIL_OPS, cooldown_ms=0, max_triggers=3)
        assert engine.get_rule("r").trigger_count == 0
        assert await engine.check_alert("r", {"value": 10}) is True

    @pytest.mark.asyncio
    async def test_update_keeps_trigger_state(self, engine):
        engine.define_rule("r", _cond(), EMAIL_OPS, cooldown_ms=0, max_triggers=1)
        assert await engine.check_alert("r", {"value": 10}) is True

        engine.update_rule("r", cooldown_ms=5)
        assert engine.get_rule("r").trigger_count == 1
        assert await engine.check_alert("r", {"value": 10}) is False


# ---------------------------------------------------------------------------
# Firing
# ---------------------------------------------------------------------------


class TestFiring:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "threshold,severity",
        [(2000, "critical"), (150, "high"), (50, "medium"), (5, "low")],
    )
    async def test_severity_from_threshold_not_value(self, engine, threshold, severity):
        engine.define_rule("r", _cond(threshold=threshold), [])
        # Observed value is far above every breakpoint.
        assert await engine.check_alert("r", {"value": 10**9}) is True
        assert engine.get_alert_history()[0].severity.value == severity

    @pytest.mark.asyncio
    async def test_sets_rule_state(self, engine, clock):
        engine.define_rule("r", _cond(), [])
        await engine.check_alert("r", {"value": 10})

        rule = engine.get_rule("r")
        assert rule.last_triggered_at == clock.now_ms()
        assert rule.trigger_count == 1
        record = engine.get_alert_history()[0]
        assert record.id.startswith(f"alert_{clock.now_ms()}_")

    @pytest.mark.asyncio
    async def test_actions_dispatch_in_order(self, engine, notifier):
        engine.define_rule(
            "r",
            _cond(),
            [
                {"type": "slack", "webhook_url": "https://hooks.slack.com/services/T/B/X"},
                {"type": "email", "recipients": ["ops@volunteer-app.com"]},
                {"type": "sms", "recipients": ["+15550100"]},
                {"type": "webhook", "url": "https://hooks.example.org/alerts", "auth": "tok"},
            ],
        )
        await engine.check_alert("r", {"value": 10})

        assert [ch for ch, _ in notifier.calls] == ["slack", "email", "sms", "webhook"]
        webhook = notifier.calls_for("webhook")[0]
        assert webhook["auth_token"] == "tok"
        assert webhook["payload"]["alert"]["rule_name"] == "r"
        slack = notifier.calls_for("slack")[0]
        assert slack["payload"]["attachments"][0]["color"] == "#36a64f"

    @pytest.mark.asyncio
    async def test_failed_action_does_not_block_siblings(self, engine, notifier):
        notifier.failing = {"email"}
        engine.define_rule(
            "r",
            _cond(),
            [
                {"type": "email", "recipients": ["ops@volunteer-app.com"]},
                {"type": "slack", "webhook_url": "https://hooks.slack.com/services/T/B/X"},
            ],
        )

        assert await engine.check_alert("r", {"value": 10}) is True
        assert [ch for ch, _ in notifier.calls] == ["email", "slack"]
        assert len(engine.get_alert_history()) == 1
        assert engine.get_rule("r").trigger_count == 1

    @pytest.mark.asyncio
    async def test_unexpected_action_error_is_contained(self, engine):
        class ExplodingAction(EmailAction):
            async def dispatch(self, record, notifier):
                raise RuntimeError("boom")

        engine.add_rule(
            AlertRule(
                name="r",
                condition=AlertCondition("value", ">", 5),
                actions=[ExplodingAction(recipients=["a@b.c"])],
            )
        )
        assert await engine.check_alert("r", {"value": 10}) is True


# ---------------------------------------------------------------------------
# Time-windowed conditions
# ---------------------------------------------------------------------------


class TestTimeWindow:
    @pytest.mark.asyncio
    async def test_uses_registry_average_not_sample(self, engine, registry, clock):
        engine.define_rule(
            "slow",
            _cond(path="response_time", threshold=2000, time_window_ms=300_000),
            [],
            cooldown_ms=0,
        )
        registry.record("response_time", 1500)
        registry.record("response_time", 3500)

        # Sample value is ignored for windowed conditions.
        assert await engine.check_alert("slow", {"response_time": 0}) is True

        clock.advance(300_001)
        registry.record("response_time", 100)
        assert await engine.check_alert("slow", {"response_time": 99999}) is False

    @pytest.mark.asyncio
    async def test_empty_window_evaluates_as_zero(self, engine):
        engine.define_rule("gt", _cond(path="database_errors", threshold=0, time_window_ms=60_000), [])
        engine.define_rule("eq", _cond(path="database_errors", operator="==", threshold=0, time_window_ms=60_000), [])
        assert await engine.check_alert("gt", {}) is False
        assert await engine.check_alert("eq", {}) is True

    @pytest.mark.asyncio
    async def test_without_registry_window_is_zero(self, notifier, clock):
        bare = AlertEngine(notifier=notifier, clock=clock)
        bare.define_rule("r", _cond(path="error_rate", operator="<", threshold=1, time_window_ms=1000), [])
        assert await bare.check_alert("r", {"error_rate": 50}) is True

    @pytest.mark.asyncio
    async def test_sweep_fires_only_matching_windowed_rules(self, engine, registry, notifier):
        engine.define_rule(
            "slow", _cond(path="response_time", threshold=2000, time_window_ms=300_000), EMAIL_OPS
        )
        engine.define_rule(
            "db", _cond(path="database_errors", threshold=0, time_window_ms=60_000), EMAIL_OPS
        )
        engine.define_rule("sampled", _cond(path="response_time", threshold=0), EMAIL_OPS)
        engine.define_rule(
            "off",
            _cond(path="response_time", threshold=0, time_window_ms=300_000),
            EMAIL_OPS,
            enabled=False,
        )
        registry.record("response_time", 2500)
        registry.record("response_time", 2100)

        assert await engine.evaluate_windowed_rules() == ["slow"]
        assert [a.rule_name for a in engine.get_alert_history()] == ["slow"]
        assert len(notifier.calls_for("email")) == 1

    @pytest.mark.asyncio
    async def test_sweep_respects_cooldown(self, engine, registry, clock):
        engine.define_rule(
            "slow",
            _cond(path="response_time", threshold=2000, time_window_ms=300_000),
            [],
            cooldown_ms=60_000,
        )
        registry.record("response_time", 5000)

        assert await engine.evaluate_windowed_rules() == ["slow"]
        assert await engine.evaluate_windowed_rules() == []
        clock.advance(60_000)
        assert await engine.evaluate_windowed_rules() == ["slow"]


# ---------------------------------------------------------------------------
# History & transitions
# ---------------------------------------------------------------------------


class TestHistory:
    @pytest.mark.asyncio
    async def test_newest_first_with_limit(self, engine, clock):
        engine.define_rule("r", _cond(), [], cooldown_ms=0)
        stamps = []
        for i in range(5):
            clock.advance(1000)
            stamps.append(clock.now_ms())
            await engine.check_alert("r", {"value": 10, "seq": i})

        latest = engine.get_alert_history(2)
        assert [r.timestamp for r in latest] == [stamps[4], stamps[3]]
        assert [r.data["seq"] for r in latest] == [4, 3]

    @pytest.mark.asyncio
    async def test_history_limit_evicts_oldest(self, notifier, clock):
        small = AlertEngine(notifier=notifier, clock=clock, history_limit=3)
        small.define_rule("r", _cond(), [], cooldown_ms=0, max_triggers=100)
        for i in range(5):
            await small.check_alert("r", {"value": 10, "seq": i})

        assert [r.data["seq"] for r in small.get_alert_history()] == [4, 3, 2]

    @pytest.mark.asyncio
    async def test_acknowledge_and_resolve(self, engine, clock):
        engine.define_rule("r", _cond(), [])
        await engine.check_alert("r", {"value": 10})
        alert_id = engine.get_alert_history()[0].id

        clock.advance(500)
        assert engine.acknowledge_alert(alert_id, "admin-1") is True
        record = engine.get_alert(alert_id)
        assert record.status is AlertStatus.ACKNOWLEDGED
        assert (record.acknowledged_by, record.acknowledged_at) == ("admin-1", clock.now_ms())
        assert engine.get_active_alerts() == []

        clock.advance(500)
        assert engine.resolve_alert(alert_id, "admin-2") is True
        assert record.status is AlertStatus.RESOLVED
        assert (record.resolved_by, record.resolved_at) == ("admin-2", clock.now_ms())

    @pytest.mark.asyncio
    async def test_double_resolve_is_safe(self, engine, clock):
        engine.define_rule("r", _cond(), [])
        await engine.check_alert("r", {"value": 10})
        alert_id = engine.get_alert_history()[0].id

        assert engine.resolve_alert(alert_id, "u1") is True
        first = engine.get_alert(alert_id).resolved_at
        clock.advance(10)
        assert engine.resolve_alert(alert_id, "u1") is True
        assert engine.get_alert(alert_id).resolved_at == first + 10

    @pytest.mark.asyncio
    async def test_resolved_can_regress_to_acknowledged(self, engine):
        engine.define_rule("r", _cond(), [])
        await engine.check_alert("r", {"value": 10})
        alert_id = engine.get_alert_history()[0].id

        engine.resolve_alert(alert_id, "u1")
        assert engine.acknowledge_alert(alert_id, "u2") is True
        assert engine.get_alert(alert_id).status is AlertStatus.ACKNOWLEDGED

    def test_unknown_alert_id(self, engine):
        assert engine.acknowledge_alert("alert_0_missing", "u") is False
        assert engine.resolve_alert("alert_0_missing", "u") is False

    @pytest.mark.asyncio
    async def test_stats_tally(self, engine):
        engine.define_rule("crit", _cond(threshold=5000), [], cooldown_ms=0)
        engine.define_rule("low", _cond(threshold=1), [], cooldown_ms=0)
        for _ in range(2):
            await engine.check_alert("crit", {"value": 10**6})
        await engine.check_alert("low", {"value": 10})

        crit_ids = [r.id for r in engine.get_alert_history() if r.rule_name == "crit"]
        engine.acknowledge_alert(crit_ids[0], "u")
        engine.resolve_alert(crit_ids[1], "u")

        assert engine.get_alert_stats() == {
            "total": 3,
            "active": 1,
            "acknowledged": 1,
            "resolved": 1,
            "by_severity": {"critical": 2, "high": 0, "medium": 0, "low": 1},
        }

    @pytest.mark.asyncio
    async def test_history_survives_rule_deletion(self, engine):
        engine.define_rule("r", _cond(), [])
        await engine.check_alert("r", {"value": 10})
        assert engine.delete_rule("r") is True
        assert engine.get_alert_history()[0].rule_name == "r"


# ---------------------------------------------------------------------------
# test_alert
# ---------------------------------------------------------------------------


class TestTestAlert:
    @pytest.mark.asyncio
    async def test_bypasses_cooldown_and_cap(self, engine, notifier, clock):
        engine.define_rule("r", _cond(), EMAIL_OPS, max_triggers=1)
        assert await engine.check_alert("r", {"value": 10}) is True

        result = await engine.test_alert("r")

        assert result == {"success": True, "message": "Test alert triggered for r"}
        latest = engine.get_alert_history()[0]
        assert latest.data == {"timestamp": clock.now_ms(), "test": True}
        assert engine.get_rule("r").trigger_count == 2
        assert len(notifier.calls_for("email")) == 2

    @pytest.mark.asyncio
    async def test_unknown_rule(self, engine):
        result = await engine.test_alert("missing")
        assert result["success"] is False
        assert "missing" in result["error"]


# ---------------------------------------------------------------------------
# Rule administration
# ---------------------------------------------------------------------------


class TestRuleAdministration:
    def test_define_requires_name(self, engine):
        with pytest.raises(RuleDefinitionError):
            engine.define_rule("", _cond(), [])

    def test_define_rejects_bad_action(self, engine):
        with pytest.raises(RuleDefinitionError):
            engine.define_rule("r", _cond(), [{"type": "carrier-pigeon"}])
        assert engine.get_rule("r") is None

    def test_define_defaults(self, engine):
        rule = engine.define_rule("r", _cond(), EMAIL_OPS)
        assert (rule.enabled, rule.cooldown_ms, rule.max_triggers) == (True, 300_000, 10)
        assert rule.last_triggered_at is None

    def test_partial_update(self, engine):
        engine.define_rule("r", _cond(), EMAIL_OPS)
        rule = engine.update_rule("r", condition=_cond(threshold=99), max_triggers=2)
        assert rule.condition.threshold == 99
        assert rule.max_triggers == 2
        assert rule.actions[0].recipients == ["ops@volunteer-app.com"]

    def test_invalid_update_changes_nothing(self, engine):
        engine.define_rule("r", _cond(), EMAIL_OPS)
        with pytest.raises(RuleDefinitionError):
            engine.update_rule("r", enabled=False, actions=[{"type": "fax"}])
        assert engine.get_rule("r").enabled is True

    def test_update_unknown_rule(self, engine):
        assert engine.update_rule("nope", enabled=False) is None

    def test_toggle_and_delete(self, engine):
        engine.define_rule("r", _cond(), [])
        assert engine.toggle_rule("r") is False
        assert engine.toggle_rule("r") is True
        assert engine.toggle_rule("nope") is None
        assert engine.delete_rule("r") is True
        assert engine.delete_rule("r") is False

    def test_dispose_clears_state(self, engine):
        engine.define_rule("r", _cond(), [])
        engine.dispose()
        assert engine.list_rules() == []
        assert engine.get_alert_stats()["total"] == 0
