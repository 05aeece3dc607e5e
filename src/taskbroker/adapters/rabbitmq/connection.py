"""RabbitMQ adapter – ConnectionManager.

Owns the single broker connection, a cache of named channels and the durable
topology. Every other component obtains channels and publishes through it.

Channel ids are namespaces, one per usage pattern, never shared:

| id                  | used by                                  |
|---------------------|------------------------------------------|
| ``publisher``       | direct task publishes                    |
| ``delayed-publisher``| delayed / retry publishes               |
| ``consumer-<queue>``| one consumer per queue (TaskDispatcher)  |
| ``admin``           | queue info and purge                     |
| ``health-check``    | liveness checks (HealthMonitor)          |
| ``topology``        | exchange / queue declarations            |
"""
from __future__ import annotations

import asyncio
import contextlib
import functools
from typing import TYPE_CHECKING, Any, Awaitable, Callable

import aio_pika
from aio_pika import DeliveryMode, ExchangeType
from pamqp.commands import Basic

from taskbroker.config.settings import ConnectionPoolConfig
from taskbroker.kernel.errors import (
    BrokerError,
    ConnectionAttemptsExhaustedError,
    NotConnectedError,
    PublishError,
    TopologyError,
)
from taskbroker.kernel.messaging import (
    DEAD_LETTER_EXCHANGE,
    DEAD_LETTER_TTL_MS,
    DELAY_BUCKET_HEADER,
    DELAY_BUCKETS_MS,
    DELAYED_EXCHANGE,
    HEALTH_QUEUE,
    HEALTH_QUEUE_TTL_MS,
    PRIORITIES,
    PROCESSING_EXCHANGE,
    QueueConfiguration,
    QueueInfo,
    TaskMessage,
    TaskPriority,
    delay_bucket,
    delay_wait_queue,
)
from taskbroker.kernel.time import Clock, SystemClock
from taskbroker.observability.logging import get_logger
from taskbroker.resilience.retry import LinearBackoff

if TYPE_CHECKING:
    from aio_pika.abc import AbstractChannel, AbstractConnection, AbstractQueue

Connector = Callable[..., Awaitable["AbstractConnection"]]
ReconnectListener = Callable[[], Awaitable[None]]

logger = get_logger(__name__)

PUBLISHER_CHANNEL = "publisher"
DELAYED_PUBLISHER_CHANNEL = "delayed-publisher"
ADMIN_CHANNEL = "admin"
HEALTH_CHECK_CHANNEL = "health-check"
TOPOLOGY_CHANNEL = "topology"


def consumer_channel_id(queue_name: str) -> str:
    return f"consumer-{queue_name}"


class ConnectionManager:
    """Single broker connection with reconnect, channel cache and topology."""

    def __init__(
        self,
        config: ConnectionPoolConfig | None = None,
        *,
        connector: Connector | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._config = config or ConnectionPoolConfig()
        self._connector: Connector = connector or aio_pika.connect
        self._clock = clock or SystemClock()
        self._connection: AbstractConnection | None = None
        self._channels: dict[str, AbstractChannel] = {}
        self._backoff = LinearBackoff(self._config.reconnect_delay)
        self._max_attempts = self._config.max_connection_attempts
        self._attempts = 0
        self._connecting = False
        self._closing = False
        self._has_connected = False
        self._topology_initialized = False
        self._reconnect_task: asyncio.Task[None] | None = None
        self._ready = asyncio.Event()
        self._fatal_error: ConnectionAttemptsExhaustedError | None = None
        self._reconnect_listeners: list[ReconnectListener] = []

    @property
    def config(self) -> ConnectionPoolConfig:
        return self._config

    @property
    def connection_attempts(self) -> int:
        return self._attempts

    @property
    def max_connection_attempts(self) -> int:
        return self._max_attempts

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Open the connection; a no-op while connected or while a connect is in flight.

        On failure a reconnect is scheduled after ``reconnect_delay * attempt``
        ms. Raises :class:`ConnectionAttemptsExhaustedError` once the attempt
        cap is reached.
        """
        if self.is_connected():
            logger.debug("broker_already_connected")
            return
        if self._connecting:
            logger.warning("broker_connect_already_in_progress")
            return

        self._connecting = True
        self._closing = False
        reconnected = False
        try:
            logger.info("broker_connecting", host=self._config.host, port=self._config.port)
            connection = await self._connector(
                self._config.connection_url,
                client_properties={"connection_name": self._config.connection_name},
            )
        except Exception as exc:  # noqa: BLE001
            logger.error("broker_connect_failed", error=str(exc), attempt=self._attempts)
            self.handle_connection_error(exc)
        else:
            self._connection = connection
            connection.close_callbacks.add(self._on_connection_closed)
            self._attempts = 0
            self._fatal_error = None
            reconnected = self._has_connected
            self._has_connected = True
            self._ready.set()
            logger.info("broker_connected", url=self._config.safe_url)
        finally:
            self._connecting = False

        if self._fatal_error is not None:
            raise self._fatal_error
        if reconnected:
            await self._notify_reconnected()

    async def wait_until_connected(self, timeout: float | None = None) -> None:
        """Block until connected; re-raise the fatal error if attempts ran out."""
        if self._fatal_error is None and not self.is_connected():
            await asyncio.wait_for(self._ready.wait(), timeout)
        if self._fatal_error is not None:
            raise self._fatal_error

    async def initialize(self, timeout: float | None = None) -> None:
        """Connect (riding out the reconnect sequence) and declare the topology."""
        await self.connect()
        await self.wait_until_connected(timeout)
        await self.initialize_topology()

    def handle_connection_error(self, exc: BaseException) -> None:
        """Drop the connection and its channels and continue the reconnect sequence."""
        self._reset_connection_state()
        if self._closing:
            return

        if self._attempts < self._max_attempts:
            self._attempts += 1
            delay_ms = self._backoff.compute(self._attempts)
            logger.info(
                "broker_reconnect_scheduled",
                attempt=self._attempts,
                max_attempts=self._max_attempts,
                delay_ms=delay_ms,
                error=str(exc),
            )
            self._schedule_reconnect(delay_ms)
        else:
            self._fatal_error = ConnectionAttemptsExhaustedError(self._attempts, cause=exc)
            logger.error("broker_connect_attempts_exhausted", attempts=self._attempts)
            self._ready.set()

    def handle_connection_close(self) -> None:
        """Drop the connection and its channels and reconnect after ``reconnect_delay``."""
        self._reset_connection_state()
        if self._closing:
            return
        logger.warning("broker_connection_closed")
        self._schedule_reconnect(self._config.reconnect_delay)

    def add_reconnect_listener(self, listener: ReconnectListener) -> None:
        """Register a coroutine run after every successful *re*connection."""
        self._reconnect_listeners.append(listener)

    def is_connected(self) -> bool:
        return self._connection is not None and not self._connection.is_closed

    async def disconnect(self) -> None:
        """Cancel pending reconnects and close channels and connection best-effort."""
        self._closing = True
        if self._reconnect_task is not None:
            self._reconnect_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._reconnect_task
            self._reconnect_task = None

        for channel_id, channel in list(self._channels.items()):
            try:
                await channel.close()
                logger.info("channel_closed", channel_id=channel_id)
            except Exception as exc:  # noqa: BLE001
                logger.warning("channel_close_failed", channel_id=channel_id, error=str(exc))
        self._channels.clear()

        connection, self._connection = self._connection, None
        if connection is not None:
            try:
                await connection.close()
                logger.info("broker_connection_closed_by_client")
            except Exception as exc:  # noqa: BLE001
                logger.warning("broker_connection_close_failed", error=str(exc))
        self._ready.clear()

    async def __aenter__(self) -> "ConnectionManager":
        await self.initialize()
        return self

    async def __aexit__(self, *_: Any) -> None:
        await self.disconnect()

    def _reset_connection_state(self) -> None:
        self._connection = None
        self._channels.clear()
        self._ready.clear()

    def _on_connection_closed(self, sender: Any, exc: BaseException | None = None) -> None:
        if sender is not self._connection or self._closing:
            return
        if exc is None:
            self.handle_connection_close()
        else:
            logger.error("broker_connection_error", error=str(exc))
            self.handle_connection_error(exc)

    def _schedule_reconnect(self, delay_ms: float) -> None:
        if self._reconnect_task is not None and not self._reconnect_task.done():
            return
        self._reconnect_task = asyncio.get_running_loop().create_task(
            self._reconnect_after(delay_ms / 1000)
        )

    async def _reconnect_after(self, delay_s: float) -> None:
        await asyncio.sleep(delay_s)
        self._reconnect_task = None
        try:
            await self.connect()
        except ConnectionAttemptsExhaustedError:
            # Surfaced to waiters through wait_until_connected().
            return

    async def _notify_reconnected(self) -> None:
        if self._topology_initialized:
            try:
                await self.initialize_topology()
            except BrokerError as exc:
                logger.error("topology_redeclare_failed", error=str(exc))
        for listener in list(self._reconnect_listeners):
            try:
                await listener()
            except Exception as exc:  # noqa: BLE001
                logger.error("reconnect_listener_failed", error=str(exc))

    # ------------------------------------------------------------------
    # Channels
    # ------------------------------------------------------------------

    async def get_channel(self, channel_id: str = "default") -> AbstractChannel:
        """Return the cached channel for *channel_id*, creating it if needed.

        New channels get ``prefetch=1`` and evict themselves from the cache
        when closed.
        """
        connection = self._connection
        if connection is None or connection.is_closed:
            raise NotConnectedError()

        cached = self._channels.get(channel_id)
        if cached is not None:
            if not cached.is_closed:
                return cached
            del self._channels[channel_id]

        try:
            channel = await connection.channel()
            channel.close_callbacks.add(functools.partial(self._on_channel_closed, channel_id))
            await channel.set_qos(prefetch_count=1)
        except Exception as exc:
            logger.error("channel_create_failed", channel_id=channel_id, error=str(exc))
            raise

        existing = self._channels.get(channel_id)
        if existing is not None and not existing.is_closed:
            # Another coroutine won the race for this id.
            await channel.close()
            return existing

        self._channels[channel_id] = channel
        logger.info("channel_created", channel_id=channel_id)
        return channel

    def _on_channel_closed(self, channel_id: str, sender: Any, exc: BaseException | None = None) -> None:
        if self._channels.get(channel_id) is sender:
            del self._channels[channel_id]
        if exc is not None:
            logger.error("channel_error", channel_id=channel_id, error=str(exc))
        else:
            logger.warning("channel_closed", channel_id=channel_id)

    # ------------------------------------------------------------------
    # Topology
    # ------------------------------------------------------------------

    async def initialize_topology(self) -> None:
        """Idempotently declare exchanges, priority queues, DLQs and the health queue."""
        plugin = self._config.delayed_exchange_plugin
        try:
            channel = await self.get_channel(TOPOLOGY_CHANNEL)

            processing = await channel.declare_exchange(
                PROCESSING_EXCHANGE, ExchangeType.TOPIC, durable=True
            )
            if plugin:
                delayed = await channel.declare_exchange(
                    DELAYED_EXCHANGE,
                    "x-delayed-message",
                    durable=True,
                    arguments={"x-delayed-type": "topic"},
                )
            else:
                delayed = await channel.declare_exchange(
                    DELAYED_EXCHANGE, ExchangeType.HEADERS, durable=True
                )
            dlx = await channel.declare_exchange(
                DEAD_LETTER_EXCHANGE, ExchangeType.DIRECT, durable=True
            )

            for priority in PRIORITIES:
                queue = await self._create_queue(channel, QueueConfiguration.for_priority(priority))
                await queue.bind(processing, routing_key=priority.binding_pattern)
                if plugin:
                    await queue.bind(delayed, routing_key=priority.binding_pattern)

                dlq = await channel.declare_queue(
                    priority.dead_letter_queue,
                    durable=True,
                    arguments={"x-message-ttl": DEAD_LETTER_TTL_MS},
                )
                await dlq.bind(dlx, routing_key=priority.dead_letter_routing_key)

            if not plugin:
                for bucket in DELAY_BUCKETS_MS:
                    await self._create_wait_queue(channel, delayed, bucket)

            await channel.declare_queue(
                HEALTH_QUEUE,
                durable=False,
                auto_delete=True,
                arguments={"x-message-ttl": HEALTH_QUEUE_TTL_MS},
            )
        except BrokerError:
            raise
        except Exception as exc:
            logger.error("topology_init_failed", error=str(exc))
            raise TopologyError(f"Failed to initialize topology: {exc}", cause=exc) from exc

        self._topology_initialized = True
        logger.info("topology_initialized", delayed_exchange_plugin=plugin)

    async def _create_wait_queue(self, channel: AbstractChannel, delayed: Any, bucket_ms: int) -> None:
        # Expired messages dead-letter into ``processing`` under their original
        # routing key.
        queue = await channel.declare_queue(
            delay_wait_queue(bucket_ms),
            durable=True,
            arguments={
                "x-message-ttl": bucket_ms,
                "x-dead-letter-exchange": PROCESSING_EXCHANGE,
            },
        )
        await queue.bind(
            delayed,
            routing_key="",
            arguments={"x-match": "all", DELAY_BUCKET_HEADER: bucket_ms},
        )

    async def _create_queue(self, channel: AbstractChannel, config: QueueConfiguration) -> AbstractQueue:
        queue = await channel.declare_queue(
            config.name,
            durable=config.durable,
            arguments=config.arguments(),
        )
        logger.info("queue_declared", queue=config.name, max_priority=config.priority)
        return queue

    # ------------------------------------------------------------------
    # Publishing
    # ------------------------------------------------------------------

    async def publish_message(
        self,
        routing_key: str,
        message: TaskMessage,
        priority: TaskPriority = TaskPriority.NORMAL,
    ) -> bool:
        """Publish *message* to ``processing``.

        Returns ``False`` when the broker negatively confirms (caller should
        back off). Transport failures raise :class:`PublishError`.
        """
        return await self._publish(
            PUBLISHER_CHANNEL,
            PROCESSING_EXCHANGE,
            routing_key,
            message,
            priority,
            headers=self._headers(routing_key, message),
        )

    async def publish_delayed(self, routing_key: str, message: TaskMessage, delay_ms: float) -> bool:
        """Publish *message* to ``processing.delayed`` for reinjection after *delay_ms*.

        With the broker plugin the ``x-delay`` header is honoured exactly.
        Without it the message waits in the wait queue of
        :func:`delay_bucket`, so it is reinjected no earlier than *delay_ms*
        and at most one bucket step later.
        """
        delay = int(delay_ms)
        headers = self._headers(routing_key, message)
        headers["x-delay"] = delay
        if not self._config.delayed_exchange_plugin:
            bucket = delay_bucket(delay)
            if delay > bucket:
                logger.warning("delay_exceeds_longest_bucket", delay_ms=delay, bucket_ms=bucket)
            headers[DELAY_BUCKET_HEADER] = bucket
        return await self._publish(
            DELAYED_PUBLISHER_CHANNEL,
            DELAYED_EXCHANGE,
            routing_key,
            message,
            message.metadata.priority,
            headers=headers,
        )

    @staticmethod
    def _headers(routing_key: str, message: TaskMessage) -> dict[str, Any]:
        return {
            "x-retry-count": message.metadata.retry_count,
            "x-original-routing-key": routing_key,
            "x-enqueued-at": message.enqueued_at.isoformat(),
        }

    async def _publish(
        self,
        channel_id: str,
        exchange_name: str,
        routing_key: str,
        message: TaskMessage,
        priority: TaskPriority,
        *,
        headers: dict[str, Any],
    ) -> bool:
        try:
            channel = await self.get_channel(channel_id)
            exchange = await channel.get_exchange(exchange_name, ensure=False)
            confirmation = await exchange.publish(
                aio_pika.Message(
                    body=message.to_json(),
                    content_type="application/json",
                    delivery_mode=DeliveryMode.PERSISTENT,
                    priority=priority.weight,
                    message_id=message.id,
                    correlation_id=message.metadata.correlation_id,
                    timestamp=self._clock.now(),
                    headers=headers,
                ),
                routing_key=routing_key,
            )
        except BrokerError as exc:
            logger.error("publish_failed", routing_key=routing_key, error=str(exc))
            raise
        except Exception as exc:
            logger.error("publish_failed", routing_key=routing_key, error=str(exc))
            raise PublishError(routing_key, f"Failed to publish message: {exc}", cause=exc) from exc

        published = not isinstance(confirmation, Basic.Nack)
        if published:
            logger.debug("message_published", message_id=message.id, routing_key=routing_key)
        else:
            logger.warning("message_publish_nacked", message_id=message.id, routing_key=routing_key)
        return published

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    async def get_queue_info(self, queue_name: str) -> QueueInfo:
        channel = await self.get_channel(ADMIN_CHANNEL)
        queue = await channel.declare_queue(queue_name, passive=True)
        result = queue.declaration_result
        return QueueInfo(
            name=queue_name,
            message_count=result.message_count,
            consumer_count=result.consumer_count,
        )

    async def purge_queue(self, queue_name: str) -> int:
        channel = await self.get_channel(ADMIN_CHANNEL)
        queue = await channel.declare_queue(queue_name, passive=True)
        result = await queue.purge()
        purged = result.message_count
        logger.info("queue_purged", queue=queue_name, message_count=purged)
        return purged


__all__ = [
    "ADMIN_CHANNEL",
    "ConnectionManager",
    "Connector",
    "DELAYED_PUBLISHER_CHANNEL",
    "HEALTH_CHECK_CHANNEL",
    "PUBLISHER_CHANNEL",
    "ReconnectListener",
    "TOPOLOGY_CHANNEL",
    "consumer_channel_id",
]
