"""RabbitMQ adapter – aio-pika backed connection, channels and topology."""
from taskbroker.adapters.rabbitmq.connection import (
    ADMIN_CHANNEL,
    DELAYED_PUBLISHER_CHANNEL,
    HEALTH_CHECK_CHANNEL,
    PUBLISHER_CHANNEL,
    TOPOLOGY_CHANNEL,
    ConnectionManager,
    Connector,
    ReconnectListener,
    consumer_channel_id,
)

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
