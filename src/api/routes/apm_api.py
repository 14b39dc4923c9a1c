"""APM endpoints over the in-process MetricsRegistry.

Provides:
- GET  /api/v1/apm/health         -- Registry health snapshot
- GET  /api/v1/apm/metrics        -- Summaries of every metric
- GET  /api/v1/apm/metrics/{name} -- Summary + recent samples of one metric
- POST /api/v1/apm/metrics        -- Record a custom metric
- POST /api/v1/apm/business       -- Record a business event (any user)
- POST /api/v1/apm/performance    -- Record a performance metric
- POST /api/v1/apm/database-queries -- Record a data-layer query outcome
- POST /api/v1/apm/errors         -- Capture a client error (any user)
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional, Union

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from src.api.auth import CurrentUser, Role, require_role
from src.api.deps import get_metrics_registry
from src.monitoring.metrics_registry import MetricsRegistry

router = APIRouter(prefix="/apm", tags=["APM"])

admin_only = require_role(Role.ADMIN)


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


class MetricRequest(BaseModel):
    name: str = Field(min_length=1)
    value: float
    tags: dict[str, str] = Field(default_factory=dict)


class BusinessMetricRequest(BaseModel):
    event: str = Field(min_length=1)
    user_id: Optional[str] = None
    data: dict[str, Any] = Field(default_factory=dict)


class PerformanceMetricRequest(BaseModel):
    metric: str = Field(min_length=1)
    value: float
    unit: Optional[str] = None
    tags: dict[str, str] = Field(default_factory=dict)


class ClientError(BaseModel):
    message: str = Field(min_length=1)
    stack: Optional[str] = None


class ErrorReportRequest(BaseModel):
    """An error reported by a client; ``error`` is a message or an object."""

    error: Union[str, ClientError]
    context: dict[str, Any] = Field(default_factory=dict)


class DatabaseQueryRequest(BaseModel):
    query: str = Field(min_length=1)
    duration_ms: float = Field(ge=0)
    error: Optional[str] = None


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


@router.get("/health", dependencies=[Depends(admin_only)])
async def get_health(registry: MetricsRegistry = Depends(get_metrics_registry)):
    return _envelope(registry.health())


@router.get("/metrics", dependencies=[Depends(admin_only)])
async def get_metrics_summary(registry: MetricsRegistry = Depends(get_metrics_registry)):
    return _envelope(
        {name: s.to_dict() for name, s in registry.summarize_all().items()}
    )


@router.get("/metrics/{name}", dependencies=[Depends(admin_only)])
async def get_metric(
    name: str,
    limit: int = Query(default=50, ge=1, le=1000),
    registry: MetricsRegistry = Depends(get_metrics_registry),
):
    summary = registry.summarize(name)
    if summary is None:
        raise HTTPException(404, f"Metric not found: {name}")
    return _envelope(
        {
            "name": name,
            "summary": summary.to_dict(),
            "samples": [s.to_dict() for s in registry.samples(name, limit)],
        }
    )


# ---------------------------------------------------------------------------
# Recording
# ---------------------------------------------------------------------------


@router.post("/metrics", dependencies=[Depends(admin_only)])
async def record_metric(
    request: MetricRequest, registry: MetricsRegistry = Depends(get_metrics_registry)
):
    sample = registry.record(request.name, request.value, request.tags)
    return _envelope(sample.to_dict(), message="Metric recorded successfully")


@router.post("/business")
async def record_business_metric(
    request: BusinessMetricRequest,
    user: CurrentUser,
    registry: MetricsRegistry = Depends(get_metrics_registry),
):
    sample = registry.record_business_metric(
        request.event, request.user_id or user.get("sub"), request.data
    )
    return _envelope(sample.to_dict(), message="Business metric recorded successfully")


@router.post("/performance", dependencies=[Depends(admin_only)])
async def record_performance_metric(
    request: PerformanceMetricRequest,
    registry: MetricsRegistry = Depends(get_metrics_registry),
):
    sample = registry.record_performance_metric(
        request.metric, request.value, request.unit, request.tags
    )
    return _envelope(sample.to_dict(), message="Performance metric recorded successfully")


@router.post("/database-queries", dependencies=[Depends(admin_only)])
async def record_database_query(
    request: DatabaseQueryRequest,
    registry: MetricsRegistry = Depends(get_metrics_registry),
):
    """Report one query from the data layer; failures feed ``database_errors``."""
    sample = registry.record_database_query(
        request.query, request.duration_ms, request.error
    )
    return _envelope(sample.to_dict(), message="Database query recorded successfully")


@router.post("/errors")
async def capture_error(
    request: ErrorReportRequest,
    user: CurrentUser,
    registry: MetricsRegistry = Depends(get_metrics_registry),
):
    if isinstance(request.error, ClientError):
        message = request.error.message
        context = {**request.context, "stack": request.error.stack}
    else:
        message = request.error
        context = dict(request.context)
    context.setdefault("user_id", user.get("sub"))
    registry.capture_error(message, context)
    return _envelope(message="Error captured successfully")
