"""Liveness endpoint."""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from src.api.deps import get_alert_engine, get_metrics_registry
from src.monitoring.alert_engine import AlertEngine
from src.monitoring.metrics_registry import MetricsRegistry

router = APIRouter(tags=["Health"])


@router.get("/health")
async def health_check(
    engine: AlertEngine = Depends(get_alert_engine),
    registry: MetricsRegistry = Depends(get_metrics_registry),
) -> dict:
    """Basic liveness check -- reports in-memory state sizes."""
    stats = engine.get_alert_stats()
    return {
        "status": "ok",
        "alert_rules": len(engine.list_rules()),
        "active_alerts": stats["active"],
        "metrics": len(registry.names()),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
