"""Application dispatch – TaskDispatcher.

Producer side: ``enqueue_task`` routes a new envelope to ``processing`` (or to
``processing.delayed`` when a delay is requested).

Consumer side: every delivery runs through

    received -> processing -> acked | retry-scheduled | dead-lettered

A retry is a brand-new message published through the delayed exchange; the
original delivery is acked once the retry is scheduled. Dead-lettering is a
``nack(requeue=False)`` so the broker routes the message to ``dlq.<priority>``.
"""
from __future__ import annotations

import asyncio
import functools
import time
from dataclasses import dataclass
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Mapping

from taskbroker.adapters.rabbitmq import ConnectionManager, consumer_channel_id
from taskbroker.application.dispatch.options import ConsumerOptions
from taskbroker.application.scheduler import Job, Scheduler
from taskbroker.kernel.errors import MalformedMessageError, PublishError
from taskbroker.kernel.messaging import (
    DeadLetterMessage,
    QueueHealthStats,
    TaskMessage,
    TaskPriority,
)
from taskbroker.kernel.time import Clock, SystemClock
from taskbroker.observability.events import (
    TASK_DEAD_LETTER,
    TASK_ENQUEUED,
    TASK_PROCESSING_COMPLETED,
    TASK_PROCESSING_STARTED,
    TASK_RETRY_SCHEDULED,
    EventEmitter,
)
from taskbroker.observability.logging import get_logger
from taskbroker.resilience.retry import ErrorPredicate, RetryDelayPolicy, is_permanent_error

if TYPE_CHECKING:
    from aio_pika.abc import AbstractChannel, AbstractIncomingMessage, AbstractQueue

__all__ = ["METRICS_JOB_ID", "Processor", "RetryPolicyFactory", "TaskDispatcher"]

Processor = Callable[[TaskMessage], Awaitable[Any]]
RetryPolicyFactory = Callable[[float], RetryDelayPolicy]

METRICS_JOB_ID = "task-dispatcher.update-queue-metrics"
METRICS_INTERVAL_SECONDS = 30.0

logger = get_logger(__name__)


@dataclass
class _Consumer:
    queue_name: str
    processor: Processor
    options: ConsumerOptions
    retry_policy: RetryDelayPolicy
    channel: AbstractChannel | None = None
    queue: AbstractQueue | None = None
    consumer_tag: str | None = None


class TaskDispatcher:
    """Priority-aware enqueue, consumer lifecycle and the retry/dead-letter policy.

    Parameters
    ----------
    connection:
        The shared :class:`ConnectionManager`; the dispatcher only obtains
        channels and publishes through it.
    emitter:
        Receives the ``task.*`` lifecycle events.
    scheduler:
        Optional; ``start()`` registers the 30 s queue-metrics job on it.
    permanent_error:
        Predicate deciding whether a processing error skips the retry budget.
    retry_policy_factory:
        Builds the backoff policy from a consumer's ``retry_delay``.
    """

    def __init__(
        self,
        connection: ConnectionManager,
        emitter: EventEmitter | None = None,
        *,
        scheduler: Scheduler | None = None,
        clock: Clock | None = None,
        permanent_error: ErrorPredicate = is_permanent_error,
        retry_policy_factory: RetryPolicyFactory = RetryDelayPolicy.exponential,
        metrics_interval: float = METRICS_INTERVAL_SECONDS,
    ) -> None:
        self._connection = connection
        self._emitter = emitter or EventEmitter()
        self._scheduler = scheduler
        self._clock = clock or SystemClock()
        self._permanent_error = permanent_error
        self._retry_policy_factory = retry_policy_factory
        self._metrics_interval = metrics_interval
        self._consumers: dict[str, _Consumer] = {}
        self._health_stats: dict[str, QueueHealthStats] = {}
        self._processed: dict[str, int] = {}
        self._throughput_marks: dict[str, tuple[float, int]] = {}
        self._counters: dict[str, int] = {}
        connection.add_reconnect_listener(self._restore_consumers)

    @property
    def emitter(self) -> EventEmitter:
        return self._emitter

    @property
    def message_counters(self) -> Mapping[str, int]:
        """Read-only view of ``enqueued.*``, ``processing.*``, ``completed.*`` and ``failed.*``."""
        return MappingProxyType(self._counters)

    @property
    def active_consumers(self) -> list[str]:
        return list(self._consumers)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        if self._scheduler is not None:
            self._scheduler.add_job(
                Job(
                    id=METRICS_JOB_ID,
                    name="Refresh queue metrics",
                    handler=self.update_queue_metrics,
                    interval_seconds=self._metrics_interval,
                )
            )
        logger.info("task_dispatcher_started")

    async def stop(self) -> None:
        if self._scheduler is not None:
            self._scheduler.remove_job(METRICS_JOB_ID)
        await self.stop_all_consumers()
        logger.info("task_dispatcher_stopped")

    # ------------------------------------------------------------------
    # Producer side
    # ------------------------------------------------------------------

    async def enqueue_task(
        self,
        task_type: str,
        payload: Any,
        *,
        priority: TaskPriority | str = TaskPriority.NORMAL,
        correlation_id: str | None = None,
        delay: float = 0,
        max_retries: int = 3,
    ) -> str:
        """Publish a new task and return its message id.

        With ``delay > 0`` the message goes through the delayed exchange only.
        Raises :class:`PublishError` when the broker refuses the publish.
        """
        priority = TaskPriority(priority)
        message = TaskMessage.create(
            task_type,
            payload,
            priority=priority,
            correlation_id=correlation_id,
            max_retries=max_retries,
            now=self._clock.now(),
        )
        routing_key = priority.routing_key(task_type)

        try:
            if delay > 0:
                await self.enqueue_delayed_message(message, routing_key, delay)
            else:
                published = await self._connection.publish_message(routing_key, message, priority)
                if not published:
                    raise PublishError(routing_key, f"Broker refused task {message.id}")
        except Exception as exc:
            logger.error("task_enqueue_failed", task_type=task_type, error=str(exc))
            raise

        self._increment(f"enqueued.{priority.value}")
        self._emitter.emit(
            TASK_ENQUEUED,
            message_id=message.id,
            task_type=task_type,
            priority=priority.value,
            correlation_id=message.metadata.correlation_id,
        )
        logger.debug(
            "task_enqueued",
            task_type=task_type,
            message_id=message.id,
            priority=priority.value,
            delay_ms=delay,
        )
        return message.id

    async def enqueue_delayed_message(self, message: TaskMessage, routing_key: str, delay_ms: float) -> None:
        """Publish *message* to the delayed exchange for reinjection on *routing_key*."""
        try:
            published = await self._connection.publish_delayed(routing_key, message, delay_ms)
        except Exception as exc:
            logger.error("delayed_enqueue_failed", message_id=message.id, error=str(exc))
            raise
        if not published:
            raise PublishError(routing_key, f"Broker refused delayed message {message.id}")
        logger.debug("delayed_message_scheduled", message_id=message.id, delay_ms=delay_ms)

    # ------------------------------------------------------------------
    # Consumer side
    # ------------------------------------------------------------------

    async def create_consumer(
        self,
        queue_name: str,
        processor: Processor,
        options: ConsumerOptions | None = None,
    ) -> None:
        """Start consuming *queue_name* on a dedicated ``consumer-<queue>`` channel."""
        options = options or ConsumerOptions()
        if queue_name in self._consumers:
            raise ValueError(f"A consumer for '{queue_name}' is already running")

        consumer = _Consumer(
            queue_name=queue_name,
            processor=processor,
            options=options,
            retry_policy=self._retry_policy_factory(options.retry_delay),
        )
        try:
            channel = await self._connection.get_channel(consumer_channel_id(queue_name))
            await channel.set_qos(prefetch_count=options.prefetch)
            queue = await channel.get_queue(queue_name)
            consumer.channel = channel
            consumer.queue = queue
            consumer.consumer_tag = await queue.consume(functools.partial(self._on_message, consumer))
        except Exception as exc:
            logger.error("consumer_create_failed", queue=queue_name, error=str(exc))
            raise

        self._consumers[queue_name] = consumer
        self._throughput_marks.setdefault(
            queue_name, (self._clock.timestamp(), self._counters.get(f"completed.{queue_name}", 0))
        )
        logger.info(
            "consumer_started",
            queue=queue_name,
            consumer_tag=consumer.consumer_tag,
            prefetch=options.prefetch,
        )

    async def stop_consumer(self, queue_name: str) -> None:
        """Cancel the consumer and close its channel; failures are logged only.

        In-flight processing is not interrupted, only new deliveries stop.
        """
        consumer = self._consumers.pop(queue_name, None)
        if consumer is None:
            return
        try:
            if consumer.queue is not None and consumer.consumer_tag is not None:
                await consumer.queue.cancel(consumer.consumer_tag)
            if consumer.channel is not None:
                await consumer.channel.close()
            logger.info("consumer_stopped", queue=queue_name)
        except Exception as exc:  # noqa: BLE001
            logger.error("consumer_stop_failed", queue=queue_name, error=str(exc))

    async def stop_all_consumers(self) -> None:
        await asyncio.gather(*(self.stop_consumer(name) for name in list(self._consumers)))

    async def _restore_consumers(self) -> None:
        # Channels do not survive a reconnect; re-open every registered consumer.
        stale = list(self._consumers.values())
        self._consumers.clear()
        for consumer in stale:
            try:
                await self.create_consumer(consumer.queue_name, consumer.processor, consumer.options)
            except Exception as exc:  # noqa: BLE001
                logger.error("consumer_restore_failed", queue=consumer.queue_name, error=str(exc))

    async def _on_message(self, consumer: _Consumer, incoming: AbstractIncomingMessage) -> None:
        queue_name = consumer.queue_name
        started = time.monotonic()

        try:
            message = TaskMessage.from_json(incoming.body)
        except MalformedMessageError as exc:
            logger.error(
                "malformed_message_discarded",
                queue=queue_name,
                message_id=incoming.message_id,
                error=str(exc),
            )
            await self._settle(incoming.nack(requeue=False), "nack", queue_name)
            self.update_health_stats(queue_name, _elapsed_ms(started), success=False)
            self._increment(f"failed.{queue_name}")
            return

        logger.debug("task_processing", message_id=message.id, queue=queue_name)
        self._increment(f"processing.{queue_name}")
        self._emitter.emit(
            TASK_PROCESSING_STARTED,
            message_id=message.id,
            queue_name=queue_name,
            correlation_id=message.metadata.correlation_id,
        )

        try:
            result = await consumer.processor(message)
        except Exception as exc:
            await self._handle_processing_error(consumer, incoming, message, exc)
            self.update_health_stats(queue_name, _elapsed_ms(started), success=False)
            self._increment(f"failed.{queue_name}")
            return

        await self._settle(incoming.ack(), "ack", queue_name)
        processing_time = _elapsed_ms(started)
        self.update_health_stats(queue_name, processing_time, success=True)
        self._emitter.emit(
            TASK_PROCESSING_COMPLETED,
            message_id=message.id,
            queue_name=queue_name,
            correlation_id=message.metadata.correlation_id,
            result=result,
            processing_time=processing_time,
        )
        self._increment(f"completed.{queue_name}")
        logger.debug("task_processed", message_id=message.id, processing_time_ms=processing_time)

    async def _handle_processing_error(
        self,
        consumer: _Consumer,
        incoming: AbstractIncomingMessage,
        message: TaskMessage,
        error: Exception,
    ) -> None:
        options = consumer.options
        retry_count = message.metadata.retry_count + 1
        will_retry = retry_count <= options.max_retries and not self._permanent_error(error)

        logger.warning(
            "task_processing_failed",
            message_id=message.id,
            error=str(error),
            retry_count=retry_count,
            max_retries=options.max_retries,
            will_retry=will_retry,
        )

        if not will_retry:
            await self._dead_letter(consumer, incoming, message, error)
            return

        delay = consumer.retry_policy.compute(retry_count)
        retry_message = message.for_retry(retry_count, self._clock.now())
        routing_key = message.metadata.original_routing_key or incoming.routing_key
        try:
            await self.enqueue_delayed_message(retry_message, routing_key, delay)
        except Exception as exc:  # noqa: BLE001
            logger.error("retry_schedule_failed", message_id=message.id, error=str(exc))
            await self._dead_letter(consumer, incoming, message, error)
            return

        await self._settle(incoming.ack(), "ack", consumer.queue_name)
        self._emitter.emit(
            TASK_RETRY_SCHEDULED,
            message_id=message.id,
            retry_count=retry_count,
            delay=delay,
            error=str(error),
        )
        logger.debug(
            "task_retry_scheduled",
            message_id=message.id,
            retry_count=retry_count,
            max_retries=options.max_retries,
            delay_ms=delay,
        )

    async def _dead_letter(
        self,
        consumer: _Consumer,
        incoming: AbstractIncomingMessage,
        message: TaskMessage,
        error: Exception,
    ) -> DeadLetterMessage | None:
        await self._settle(incoming.nack(requeue=False), "nack", consumer.queue_name)

        if not consumer.options.enable_dead_letter:
            logger.error("task_discarded", message_id=message.id, queue=consumer.queue_name)
            return None

        dead_letter = DeadLetterMessage(
            message=message,
            original_queue=consumer.queue_name,
            failure_reason=str(error),
            original_error=error,
            failed_at=self._clock.now(),
        )
        self._emitter.emit(
            TASK_DEAD_LETTER,
            message_id=message.id,
            original_queue=consumer.queue_name,
            error=str(error),
            correlation_id=message.metadata.correlation_id,
            retry_count=message.metadata.retry_count,
            failed_at=dead_letter.failed_at,
        )
        logger.error(
            "task_dead_lettered",
            message_id=message.id,
            queue=consumer.queue_name,
            retry_count=message.metadata.retry_count,
            error=str(error),
        )
        return dead_letter

    @staticmethod
    async def _settle(settlement: Awaitable[None], action: str, queue_name: str) -> None:
        # A lost channel means the broker redelivers the message.
        try:
            await settlement
        except Exception as exc:  # noqa: BLE001
            logger.error("delivery_settle_failed", action=action, queue=queue_name, error=str(exc))

    # ------------------------------------------------------------------
    # Health statistics
    # ------------------------------------------------------------------

    def update_health_stats(self, queue_name: str, elapsed_ms: float, success: bool) -> QueueHealthStats:
        """Fold one processed message into the cumulative averages for *queue_name*."""
        now = self._clock.now()
        stats = self._health_stats.get(queue_name)
        if stats is None:
            stats = QueueHealthStats(queue_name=queue_name, last_processed_at=now)
            self._health_stats[queue_name] = stats

        count = self._processed.get(queue_name, 0) + 1
        self._processed[queue_name] = count
        stats.last_processed_at = now
        stats.avg_wait_time = (stats.avg_wait_time * (count - 1) + elapsed_ms) / count
        errors = stats.error_rate * (count - 1) + (0 if success else 1)
        stats.error_rate = errors / count
        return stats

    async def update_queue_metrics(self) -> None:
        """Refresh broker counts and throughput for every consumed queue."""
        for queue_name in list(self._consumers):
            stats = self._health_stats.get(queue_name)
            if stats is None:
                continue
            try:
                info = await self._connection.get_queue_info(queue_name)
            except Exception as exc:  # noqa: BLE001
                logger.debug("queue_metrics_unavailable", queue=queue_name, error=str(exc))
                continue

            stats.message_count = info.message_count
            stats.consumer_count = info.consumer_count

            now = self._clock.timestamp()
            completed = self._counters.get(f"completed.{queue_name}", 0)
            last_at, last_completed = self._throughput_marks.get(queue_name, (now, completed))
            elapsed_ms = (now - last_at) * 1000
            if elapsed_ms > 0:
                stats.throughput_per_second = (completed - last_completed) * 1000 / elapsed_ms
                self._throughput_marks[queue_name] = (now, completed)

    async def get_queue_health(self, queue_name: str | None = None) -> list[QueueHealthStats]:
        """Snapshots of the stats for *queue_name*, or for every queue."""
        if queue_name is not None:
            stats = self._health_stats.get(queue_name)
            return [stats.copy()] if stats is not None else []
        return [stats.copy() for stats in self._health_stats.values()]

    def _increment(self, key: str) -> None:
        self._counters[key] = self._counters.get(key, 0) + 1


def _elapsed_ms(started: float) -> float:
    return (time.monotonic() - started) * 1000
