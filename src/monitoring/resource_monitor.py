"""ResourceMonitor -- periodic process memory / CPU sampling.

Provides:
- sample(): one reading of the current process into the MetricsRegistry
  (``memory.rss``, ``memory.vms``, ``memory.percent``, ``cpu.user``,
  ``cpu.system``, ``cpu.percent``)
- run(): loop owned by the API lifespan; every tick it samples and then
  sweeps the engine's time-windowed rules so they fire during quiet periods
"""

from __future__ import annotations

import asyncio

import psutil
import structlog

from src.monitoring.alert_engine import AlertEngine
from src.monitoring.metrics_registry import MetricsRegistry

logger = structlog.get_logger(__name__)

DEFAULT_INTERVAL_SECONDS = 30.0


class ResourceMonitor:
    """Sample the current process with psutil on a fixed interval.

    Parameters:
        registry: Destination for the samples.
        engine: Optional engine whose windowed rules are checked each tick.
        interval_seconds: Delay between ticks.
        process: psutil process handle (defaults to the current process).
    """

    def __init__(
        self,
        registry: MetricsRegistry,
        engine: AlertEngine | None = None,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
        process: psutil.Process | None = None,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be positive, got {interval_seconds}")
        self._registry = registry
        self._engine = engine
        self.interval_seconds = interval_seconds
        self._process = process or psutil.Process()
        # Primes psutil so the next call reports usage since now.
        self._process.cpu_percent(interval=None)

    def sample(self) -> dict[str, float]:
        """Record one memory / CPU reading and return it."""
        memory = self._process.memory_info()
        cpu = self._process.cpu_times()
        reading = {
            "memory.rss": float(memory.rss),
            "memory.vms": float(memory.vms),
            "memory.percent": float(self._process.memory_percent()),
            "cpu.user": float(cpu.user),
            "cpu.system": float(cpu.system),
            "cpu.percent": float(self._process.cpu_percent(interval=None)),
        }
        for name, value in reading.items():
            self._registry.record(name, value)
        return reading

    async def tick(self) -> list[str]:
        """Sample once, then evaluate windowed rules; returns fired rule names."""
        try:
            self.sample()
        except psutil.Error as exc:
            logger.warning("resource_sample_failed", error=str(exc))
        if self._engine is None:
            return []
        return await self._engine.evaluate_windowed_rules()

    async def run(self) -> None:
        """Tick forever; stops only when cancelled."""
        logger.info("resource_monitor_started", interval_seconds=self.interval_seconds)
        try:
            while True:
                await asyncio.sleep(self.interval_seconds)
                try:
                    await self.tick()
                except Exception:
                    logger.exception("resource_monitor_tick_failed")
        finally:
            logger.info("resource_monitor_stopped")
