"""Runtime – wires one ConnectionManager, TaskDispatcher and HealthMonitor per process.

Usage::

    async with BackgroundProcessing.from_env() as processing:
        await processing.dispatcher.create_consumer("tasks.normal", handle)
        await processing.dispatcher.enqueue_task("summarise", {"doc": 42})
"""
from __future__ import annotations

from typing import Any

from taskbroker.adapters.rabbitmq import ConnectionManager, Connector
from taskbroker.application.dispatch import TaskDispatcher
from taskbroker.application.scheduler import APSchedulerAdapter, Scheduler
from taskbroker.config import ConnectionPoolConfig, DotenvSettingsLoader, EnvSettingsLoader
from taskbroker.kernel.time import Clock, SystemClock
from taskbroker.observability.events import EventEmitter
from taskbroker.observability.health import HealthMonitor
from taskbroker.observability.logging import get_logger

__all__ = ["BackgroundProcessing"]

logger = get_logger(__name__)


class BackgroundProcessing:
    """Owns the three components and their start/stop ordering."""

    def __init__(
        self,
        config: ConnectionPoolConfig | None = None,
        *,
        emitter: EventEmitter | None = None,
        scheduler: Scheduler | None = None,
        clock: Clock | None = None,
        connector: Connector | None = None,
        connect_timeout: float | None = None,
    ) -> None:
        self.config = config or ConnectionPoolConfig()
        self.emitter = emitter or EventEmitter()
        self.scheduler: Scheduler = scheduler or APSchedulerAdapter()
        self.clock = clock or SystemClock()
        self._connect_timeout = connect_timeout
        self.connection = ConnectionManager(self.config, connector=connector, clock=self.clock)
        self.dispatcher = TaskDispatcher(
            self.connection,
            self.emitter,
            scheduler=self.scheduler,
            clock=self.clock,
        )
        self.monitor = HealthMonitor(
            self.connection,
            self.dispatcher,
            self.emitter,
            scheduler=self.scheduler,
            clock=self.clock,
        )

    @classmethod
    def from_env(cls, env_file: str | None = None, **kwargs: Any) -> "BackgroundProcessing":
        """Build from ``RABBITMQ_*`` variables, loading *env_file* first when given."""
        loader = DotenvSettingsLoader(env_file) if env_file else EnvSettingsLoader()
        return cls(loader.load(ConnectionPoolConfig), **kwargs)

    async def start(self) -> None:
        await self.connection.initialize(self._connect_timeout)
        await self.dispatcher.start()
        await self.monitor.start()
        await self.scheduler.start()
        logger.info("background_processing_started", url=self.config.safe_url)

    async def stop(self) -> None:
        await self.monitor.stop()
        await self.dispatcher.stop()
        await self.scheduler.stop()
        await self.connection.disconnect()
        logger.info("background_processing_stopped")

    async def __aenter__(self) -> "BackgroundProcessing":
        await self.start()
        return self

    async def __aexit__(self, *_: Any) -> None:
        await self.stop()
