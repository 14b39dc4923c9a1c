"""FastAPI dependency injection for the monitoring services.

The lifespan in :mod:`src.api.main` builds one MetricsRegistry and one
AlertEngine per application and stores them on ``app.state``.
"""

from fastapi import Request

from src.core.config import Settings
from src.monitoring.alert_engine import AlertEngine
from src.monitoring.metrics_registry import MetricsRegistry


def get_settings(request: Request) -> Settings:
    """Return the configuration the application was built with."""
    return request.app.state.settings


def get_alert_engine(request: Request) -> AlertEngine:
    """Return the application's AlertEngine."""
    return request.app.state.alert_engine


def get_metrics_registry(request: Request) -> MetricsRegistry:
    """Return the application's MetricsRegistry."""
    return request.app.state.metrics_registry
