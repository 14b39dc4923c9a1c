"""Alerting API endpoints: history, acknowledgement, rule administration.

Provides:
- GET    /api/v1/alerts/history                -- Filtered alert history
- GET    /api/v1/alerts/active                 -- Alerts still active
- GET    /api/v1/alerts/stats                  -- Counts by status and severity
- POST   /api/v1/alerts/rules                  -- Define / replace a rule
- GET    /api/v1/alerts/rules                  -- List rules with trigger state
- PUT    /api/v1/alerts/rules/{name}           -- Partial rule update
- DELETE /api/v1/alerts/rules/{name}           -- Delete a rule
- POST   /api/v1/alerts/rules/{name}/toggle    -- Enable / disable a rule
- POST   /api/v1/alerts/test/{rule_name}       -- Force a test fire
- POST   /api/v1/alerts/initialize-defaults    -- Seed the built-in rules
- POST   /api/v1/alerts/{alert_id}/acknowledge -- Acknowledge an alert
- POST   /api/v1/alerts/{alert_id}/resolve     -- Resolve an alert
- GET    /api/v1/alerts/severities|statuses|action-types -- Reference lists

Every mutating and history route requires the ADMIN role.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from src.api.auth import CurrentUser, Role, require_role
from src.api.deps import get_alert_engine, get_settings
from src.core.config import Settings
from src.monitoring.alert_engine import AlertEngine
from src.monitoring.alert_records import AlertStatus, Severity
from src.monitoring.alert_rules import (
    DEFAULT_COOLDOWN_MS,
    DEFAULT_MAX_TRIGGERS,
    default_rules,
)

router = APIRouter(prefix="/alerts", tags=["Alerts"])

admin_only = require_role(Role.ADMIN)


# ---------------------------------------------------------------------------
# Response envelope
# ---------------------------------------------------------------------------


def _envelope(data: Any = None, message: str | None = None) -> dict:
    body: dict[str, Any] = {
        "success": True,
        "data": data,
        "meta": {"timestamp": datetime.now(timezone.utc).isoformat()},
    }
    if message:
        body["message"] = message
    return body


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RuleOptions(BaseModel):
    enabled: bool = True
    cooldown_ms: int = Field(default=DEFAULT_COOLDOWN_MS, ge=0)
    max_triggers: int = Field(default=DEFAULT_MAX_TRIGGERS, ge=0)


class DefineRuleRequest(BaseModel):
    """Request body for defining (or replacing) an alert rule."""

    name: str = Field(min_length=1)
    condition: dict[str, Any]
    actions: list[dict[str, Any]]
    options: Optional[RuleOptions] = None

    model_config = {
        "json_schema_extra": {
            "example": {
                "name": "low_disk",
                "condition": {"metric_path": "disk.free_pct", "operator": "<", "threshold": 10},
                "actions": [{"type": "email", "recipients": ["ops@volunteer-app.com"]}],
                "options": {"cooldown_ms": 0, "max_triggers": 1},
            }
        }
    }


class UpdateRuleRequest(BaseModel):
    """Partial update; omitted fields keep their current value."""

    condition: Optional[dict[str, Any]] = None
    actions: Optional[list[dict[str, Any]]] = None
    enabled: Optional[bool] = None
    cooldown_ms: Optional[int] = Field(default=None, ge=0)
    max_triggers: Optional[int] = Field(default=None, ge=0)


class AlertActorRequest(BaseModel):
    """Who acknowledged / resolved the alert.  Defaults to the token subject."""

    user_id: Optional[str] = None


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------


@router.get("/history", dependencies=[Depends(admin_only)])
async def get_history(
    limit: int = Query(default=100, ge=1, le=10000),
    status: Optional[AlertStatus] = Query(default=None),
    severity: Optional[Severity] = Query(default=None),
    engine: AlertEngine = Depends(get_alert_engine),
):
    """Most recent alerts first, optionally filtered by status / severity."""
    alerts = engine.get_alert_history(limit)
    if status is not None:
        alerts = [a for a in alerts if a.status is status]
    if severity is not None:
        alerts = [a for a in alerts if a.severity is severity]
    return _envelope([a.to_dict() for a in alerts])


@router.get("/active", dependencies=[Depends(admin_only)])
async def get_active(engine: AlertEngine = Depends(get_alert_engine)):
    return _envelope([a.to_dict() for a in engine.get_active_alerts()])


@router.get("/stats", dependencies=[Depends(admin_only)])
async def get_stats(engine: AlertEngine = Depends(get_alert_engine)):
    return _envelope(engine.get_alert_stats())


# ---------------------------------------------------------------------------
# Rule management
# ---------------------------------------------------------------------------


@router.post("/rules", dependencies=[Depends(admin_only)])
async def define_rule(
    request: DefineRuleRequest, engine: AlertEngine = Depends(get_alert_engine)
):
    """Define a rule, replacing (and resetting) any rule with the same name.

    Operators: >, >=, <, <=, ==, !=
    Action types: email, sms, webhook, slack
    """
    options = request.options or RuleOptions()
    rule = engine.define_rule(
        request.name,
        request.condition,
        request.actions,
        enabled=options.enabled,
        cooldown_ms=options.cooldown_ms,
        max_triggers=options.max_triggers,
    )
    return _envelope(rule.to_dict(), message="Alert rule defined successfully")


@router.get("/rules", dependencies=[Depends(admin_only)])
async def list_rules(engine: AlertEngine = Depends(get_alert_engine)):
    return _envelope([r.to_dict() for r in engine.list_rules()])


@router.put("/rules/{name}", dependencies=[Depends(admin_only)])
async def update_rule(
    name: str,
    request: UpdateRuleRequest,
    engine: AlertEngine = Depends(get_alert_engine),
):
    rule = engine.update_rule(
        name,
        condition=request.condition,
        actions=request.actions,
        enabled=request.enabled,
        cooldown_ms=request.cooldown_ms,
        max_triggers=request.max_triggers,
    )
    if rule is None:
        raise HTTPException(404, f"Alert rule not found: {name}")
    return _envelope(rule.to_dict(), message="Alert rule updated successfully")


@router.delete("/rules/{name}", dependencies=[Depends(admin_only)])
async def delete_rule(name: str, engine: AlertEngine = Depends(get_alert_engine)):
    if not engine.delete_rule(name):
        raise HTTPException(404, f"Alert rule not found: {name}")
    return _envelope(message="Alert rule deleted successfully")


@router.post("/rules/{name}/toggle", dependencies=[Depends(admin_only)])
async def toggle_rule(name: str, engine: AlertEngine = Depends(get_alert_engine)):
    enabled = engine.toggle_rule(name)
    if enabled is None:
        raise HTTPException(404, f"Alert rule not found: {name}")
    return _envelope(
        {"enabled": enabled},
        message=f"Alert rule {'enabled' if enabled else 'disabled'} successfully",
    )


# ---------------------------------------------------------------------------
# Testing & defaults
# ---------------------------------------------------------------------------


@router.post("/test/{rule_name}", dependencies=[Depends(admin_only)])
async def test_alert(rule_name: str, engine: AlertEngine = Depends(get_alert_engine)):
    """Force a fire of *rule_name* with a synthetic sample."""
    result = await engine.test_alert(rule_name)
    if not result["success"]:
        raise HTTPException(404, result["error"])
    return result


@router.post("/initialize-defaults", dependencies=[Depends(admin_only)])
async def initialize_defaults(
    engine: AlertEngine = Depends(get_alert_engine),
    cfg: Settings = Depends(get_settings),
):
    names = engine.initialize_default_rules(default_rules(cfg))
    return _envelope(
        {"rules": names}, message="Default alert rules initialized successfully"
    )


# ---------------------------------------------------------------------------
# Acknowledgement
# ---------------------------------------------------------------------------
# Must stay below the fixed-prefix POST routes such as /test/{rule_name}.


@router.post("/{alert_id}/acknowledge")
async def acknowledge_alert(
    alert_id: str,
    body: AlertActorRequest | None = None,
    user: dict = Depends(admin_only),
    engine: AlertEngine = Depends(get_alert_engine),
):
    user_id = (body.user_id if body else None) or user.get("sub")
    if not engine.acknowledge_alert(alert_id, user_id):
        raise HTTPException(404, f"Alert not found: {alert_id}")
    return _envelope(message="Alert acknowledged successfully")


@router.post("/{alert_id}/resolve")
async def resolve_alert(
    alert_id: str,
    body: AlertActorRequest | None = None,
    user: dict = Depends(admin_only),
    engine: AlertEngine = Depends(get_alert_engine),
):
    user_id = (body.user_id if body else None) or user.get("sub")
    if not engine.resolve_alert(alert_id, user_id):
        raise HTTPException(404, f"Alert not found: {alert_id}")
    return _envelope(message="Alert resolved successfully")


# ---------------------------------------------------------------------------
# Reference lists
# ---------------------------------------------------------------------------

_SEVERITIES = [
    {"value": "critical", "label": "Critical", "color": "#f44336", "description": "Immediate attention required"},
    {"value": "high", "label": "High", "color": "#ff9800", "description": "High priority issue"},
    {"value": "medium", "label": "Medium", "color": "#ffeb3b", "description": "Medium priority issue"},
    {"value": "low", "label": "Low", "color": "#4caf50", "description": "Low priority issue"},
]

_STATUSES = [
    {"value": "active", "label": "Active", "description": "Alert is active and requires attention"},
    {"value": "acknowledged", "label": "Acknowledged", "description": "Alert has been acknowledged"},
    {"value": "resolved", "label": "Resolved", "description": "Alert has been resolved"},
]

_ACTION_TYPES = [
    {"value": "email", "label": "Email", "description": "Send email notification"},
    {"value": "sms", "label": "SMS", "description": "Send SMS notification"},
    {"value": "webhook", "label": "Webhook", "description": "Send webhook notification"},
    {"value": "slack", "label": "Slack", "description": "Send Slack notification"},
]


@router.get("/severities")
async def list_severities(user: CurrentUser):
    return _envelope(_SEVERITIES)


@router.get("/statuses")
async def list_statuses(user: CurrentUser):
    return _envelope(_STATUSES)


@router.get("/action-types")
async def list_action_types(user: CurrentUser):
    return _envelope(_ACTION_TYPES)
