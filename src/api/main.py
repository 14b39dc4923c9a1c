"""FastAPI application entry-point for the Volunteer Ops alerting API.

Configures logging, CORS, rate limiting, request metrics and the error
envelope, builds the monitoring services in the lifespan and mounts all
route modules.
Run with:  uvicorn src.api.main:app --reload --host 0.0.0.0 --port 8000
"""

import asyncio
import contextlib
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.api.routes import alerts_api, apm_api, health
from src.core.config import Settings, settings
from src.core.utils.logging_config import configure_logging
from src.monitoring.alert_engine import AlertEngine
from src.monitoring.clock import Clock, SystemClock
from src.monitoring.errors import RuleDefinitionError
from src.monitoring.metrics_registry import MetricsRegistry
from src.monitoring.notifier import ChannelNotifier, Notifier
from src.monitoring.resource_monitor import ResourceMonitor

logger = logging.getLogger(__name__)


openapi_tags = [
    {"name": "Health", "description": "Health check endpoints"},
    {"name": "Alerts", "description": "Alert rules, history and acknowledgement"},
    {"name": "APM", "description": "In-process metrics and summaries"},
]


def create_app(
    app_settings: Settings | None = None,
    notifier: Notifier | None = None,
    clock: Clock | None = None,
) -> FastAPI:
    """Build the API.

    Args:
        app_settings: Configuration (defaults to the module singleton).
        notifier: Delivery capability; a ChannelNotifier is built otherwise.
        clock: Time source shared by the registry and the engine.
    """
    cfg = app_settings or settings

    # -----------------------------------------------------------------------
    # Lifespan -- build the monitoring services once per application
    # -----------------------------------------------------------------------
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        configure_logging()
        shared_clock = clock or SystemClock()
        registry = MetricsRegistry(capacity=cfg.metrics_capacity, clock=shared_clock)
        channel_notifier = notifier or ChannelNotifier(cfg)
        engine = AlertEngine(
            notifier=channel_notifier,
            metrics=registry,
            clock=shared_clock,
            history_limit=cfg.alert_history_limit,
        )
        app.state.settings = cfg
        app.state.metrics_registry = registry
        app.state.alert_engine = engine

        monitor = ResourceMonitor(
            registry, engine, interval_seconds=cfg.resource_sample_interval_seconds
        )
        monitor_task = asyncio.create_task(monitor.run())
        app.state.resource_monitor = monitor
        logger.info("Monitoring services started")

        yield

        monitor_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await monitor_task
        engine.dispose()
        await channel_notifier.aclose()
        logger.info("Monitoring services stopped")

    app = FastAPI(
        title=f"{cfg.project_name} Alerting API",
        version="0.1.0",
        description=(
            "Operational observability for the volunteer platform: in-process "
            "metrics, rule-based alerting and multi-channel notifications."
        ),
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
        openapi_tags=openapi_tags,
    )

    # Rate limiting
    limiter = Limiter(key_func=get_remote_address, default_limits=["100/minute"])
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # -----------------------------------------------------------------------
    # Middleware
    # -----------------------------------------------------------------------
    allowed_origins = ["http://localhost:3000", "http://localhost:8000"]
    if cfg.allowed_origins:
        allowed_origins.extend(
            o.strip() for o in cfg.allowed_origins.split(",") if o.strip()
        )
    if cfg.debug:
        allowed_origins = ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def record_request_metrics(request: Request, call_next):
        started = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            registry = getattr(request.app.state, "metrics_registry", None)
            if registry is not None:
                registry.record_http_request(
                    request.method,
                    request.url.path,
                    status_code,
                    (time.perf_counter() - started) * 1000,
                )
            # Windowed rules (error rate, latency) are re-checked after every request.
            engine = getattr(request.app.state, "alert_engine", None)
            if engine is not None:
                try:
                    await engine.evaluate_windowed_rules()
                except Exception:
                    logger.exception("Windowed alert evaluation failed")

    # -----------------------------------------------------------------------
    # Error envelope
    # -----------------------------------------------------------------------
    @app.exception_handler(RuleDefinitionError)
    async def rule_definition_error_handler(request: Request, exc: RuleDefinitionError):
        return JSONResponse(status_code=400, content={"success": False, "error": str(exc)})

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "error": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={
                "success": False,
                "error": "Invalid request",
                "details": jsonable_encoder(exc.errors()),
            },
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500, content={"success": False, "error": "Internal server error"}
        )

    # -----------------------------------------------------------------------
    # Routers
    # -----------------------------------------------------------------------
    app.include_router(health.router)
    app.include_router(alerts_api.router, prefix="/api/v1")
    app.include_router(apm_api.router, prefix="/api/v1")

    return app


app = create_app()
