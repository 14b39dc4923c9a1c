"""MetricsRegistry -- bounded in-process store of named metric observations.

Provides:
- Per-name FIFO series (default capacity 1000, oldest evicted first)
- On-demand summaries (count / min / max / avg / last value)
- Time-windowed averages for alert conditions
- Fire-and-forget sinks for forwarding samples downstream (APM vendors)
- Recorders for HTTP requests, database queries, captured errors, business
  events and performance metrics

This is READ-OPTIMIZED, NOT DURABLE: a process restart loses every series.
"""

from __future__ import annotations

from collections import deque
from dataclasses import asdict, dataclass, field
from typing import Any, Callable

import structlog

from src.monitoring.clock import Clock, SystemClock

logger = structlog.get_logger(__name__)

DEFAULT_CAPACITY = 1000
QUERY_PREVIEW_CHARS = 200

MetricSink = Callable[["MetricSample"], None]


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------


@dataclass
class MetricSample:
    """A single metric observation.

    Attributes:
        name: Metric name (e.g. ``"response_time"``).
        value: Observed numeric value.
        tags: Free-form string tags (method, status code, unit ...).
        timestamp: Observation time in epoch milliseconds.
    """

    name: str
    value: float
    tags: dict[str, str] = field(default_factory=dict)
    timestamp: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class MetricSummary:
    """Aggregates over the retained window of one metric."""

    count: int
    min: float
    max: float
    avg: float
    last_value: float
    last_timestamp: int

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# ---------------------------------------------------------------------------
# MetricsRegistry
# ---------------------------------------------------------------------------


class MetricsRegistry:
    """In-memory, per-name bounded metric series.

    Args:
        capacity: Maximum samples retained per metric name.
        clock: Source of epoch-millisecond timestamps.

    Usage::

        registry = MetricsRegistry()
        registry.record("response_time", 123.0, {"method": "GET"})
        registry.summarize("response_time").avg
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY, clock: Clock | None = None) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self.capacity = capacity
        self._clock = clock or SystemClock()
        self._series: dict[str, deque[MetricSample]] = {}
        self._sinks: list[MetricSink] = []
        self._started_at = self._clock.now_ms()

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def record(self, name: str, value: float, tags: dict[str, str] | None = None) -> MetricSample:
        """Append an observation; evicts the oldest sample beyond capacity."""
        sample = MetricSample(
            name=name,
            value=float(value),
            tags={k: str(v) for k, v in (tags or {}).items()},
            timestamp=self._clock.now_ms(),
        )

        series = self._series.get(name)
        if series is None:
            series = deque(maxlen=self.capacity)
            self._series[name] = series
        series.append(sample)

        for sink in self._sinks:
            try:
                sink(sample)
            except Exception as exc:
                logger.warning("metric_sink_failed", metric=name, error=str(exc))

        return sample

    def record_http_request(
        self, method: str, path: str, status_code: int, duration_ms: float
    ) -> None:
        """Record the standard per-request series.

        ``response_time`` and ``error_rate`` feed the default alert rules;
        ``error_rate`` is 1 for a 5xx response and 0 otherwise so its windowed
        average is the fraction of failed requests.
        """
        tags = {"method": method, "status_code": str(status_code), "path": path}
        self.record("http.request.duration", duration_ms, tags)
        self.record("http.request.count", 1, tags)
        self.record("response_time", duration_ms, {"method": method})
        self.record("error_rate", 1 if status_code >= 500 else 0, {"method": method})

    def record_business_metric(
        self, event: str, user_id: str | None = None, data: dict[str, Any] | None = None
    ) -> MetricSample:
        """Count a business event (signup, donation, check-in ...)."""
        tags = {"user_id": str(user_id)} if user_id is not None else {}
        logger.info("business_event", event_name=event, user_id=user_id, data=data or {})
        return self.record(f"business.{event}", 1, tags)

    def record_performance_metric(
        self,
        metric: str,
        value: float,
        unit: str | None = None,
        tags: dict[str, str] | None = None,
    ) -> MetricSample:
        merged = dict(tags or {})
        if unit:
            merged["unit"] = unit
        return self.record(f"performance.{metric}", value, merged)

    def record_database_query(
        self,
        query: str,
        duration_ms: float,
        error: BaseException | str | None = None,
    ) -> MetricSample:
        """Record one query's duration and its outcome.

        ``database_errors`` gets 1 for a failed query and 0 otherwise, so its
        windowed average is above zero whenever any query in the window failed.
        A failure is also passed to :meth:`capture_error`.
        """
        failed = error is not None
        sample = self.record(
            "database.query.duration",
            duration_ms,
            {"has_error": str(failed).lower()},
        )
        self.record("database_errors", 1 if failed else 0)
        if failed:
            self.capture_error(
                error,
                {"query": query[:QUERY_PREVIEW_CHARS], "duration_ms": duration_ms},
            )
        return sample

    def capture_error(
        self, error: BaseException | str, context: dict[str, Any] | None = None
    ) -> MetricSample:
        """Log an application error and count it in the ``errors`` series."""
        if isinstance(error, BaseException):
            error_type = type(error).__name__
            logger.error(
                "error_captured",
                error_type=error_type,
                error=str(error),
                context=context or {},
                exc_info=error,
            )
        else:
            error_type = "Error"
            logger.error(
                "error_captured", error_type=error_type, error=error, context=context or {}
            )
        return self.record("errors", 1, {"type": error_type})

    def add_sink(self, sink: MetricSink) -> None:
        """Forward every recorded sample to *sink*; failures are logged only."""
        self._sinks.append(sink)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def summarize(self, name: str) -> MetricSummary | None:
        """Aggregate the retained window of *name*; ``None`` if unknown."""
        series = self._series.get(name)
        if not series:
            return None

        values = [s.value for s in series]
        last = series[-1]
        return MetricSummary(
            count=len(values),
            min=min(values),
            max=max(values),
            avg=sum(values) / len(values),
            last_value=last.value,
            last_timestamp=last.timestamp,
        )

    def summarize_all(self) -> dict[str, MetricSummary]:
        result: dict[str, MetricSummary] = {}
        for name in self._series:
            summary = self.summarize(name)
            if summary is not None:
                result[name] = summary
        return result

    def window_average(self, name: str, window_ms: int) -> float | None:
        """Mean of the samples of *name* observed within the last *window_ms*.

        Returns ``None`` when no retained sample falls inside the window.
        """
        series = self._series.get(name)
        if not series:
            return None

        cutoff = self._clock.now_ms() - window_ms
        values = [s.value for s in series if s.timestamp >= cutoff]
        if not values:
            return None
        return sum(values) / len(values)

    def samples(self, name: str, limit: int | None = None) -> list[MetricSample]:
        """Retained samples for *name*, oldest first."""
        data = list(self._series.get(name, ()))
        if limit:
            return data[-limit:]
        return data

    def names(self) -> list[str]:
        return list(self._series.keys())

    def clear(self, name: str | None = None) -> None:
        if name:
            self._series.pop(name, None)
        else:
            self._series.clear()

    def health(self) -> dict[str, Any]:
        """Registry health snapshot for the APM health endpoint."""
        now = self._clock.now_ms()
        return {
            "metrics_count": len(self._series),
            "samples_count": sum(len(s) for s in self._series.values()),
            "sinks": len(self._sinks),
            "uptime_seconds": round((now - self._started_at) / 1000, 2),
            "timestamp": now,
        }
