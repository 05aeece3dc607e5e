"""Infrastructure errors – broker I/O and wire-format failures."""

from __future__ import annotations

from typing import Any

from taskbroker.kernel.errors.base import BaseError


class InfrastructureError(BaseError):
    """Infrastructure / I/O failure that is not a business rule violation."""

    default_code = "infrastructure_error"


class BrokerError(InfrastructureError):
    """Failure talking to the message broker."""

    default_code = "broker_error"


class NotConnectedError(BrokerError):
    """A channel was requested while no broker connection is open."""

    default_code = "not_connected"

    def __init__(self, message: str = "RabbitMQ connection not established", **kwargs: Any) -> None:
        super().__init__(message, **kwargs)


class ConnectionAttemptsExhaustedError(BrokerError):
    """Reconnection gave up after the configured number of attempts."""

    default_code = "connection_attempts_exhausted"

    def __init__(self, attempts: int, **kwargs: Any) -> None:
        super().__init__(
            f"Failed to establish RabbitMQ connection after {attempts} attempts",
            detail={"attempts": attempts},
            **kwargs,
        )
        self.attempts = attempts


class PublishError(BrokerError):
    """A publish failed or was negatively confirmed by the broker."""

    default_code = "publish_error"

    def __init__(
        self,
        routing_key: str,
        message: str | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(
            message or f"Failed to publish to '{routing_key}'",
            detail={"routing_key": routing_key},
            **kwargs,
        )
        self.routing_key = routing_key


class TopologyError(BrokerError):
    """Declaring exchanges, queues or bindings failed."""

    default_code = "topology_error"


class SerializationError(InfrastructureError):
    """Failed to serialize or deserialize a payload."""

    default_code = "serialization_error"

    def __init__(
        self,
        message: str,
        *,
        payload_type: str | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.payload_type = payload_type


class MalformedMessageError(SerializationError):
    """A delivery body is not a valid task envelope."""

    default_code = "malformed_message"


__all__ = [
    "BrokerError",
    "ConnectionAttemptsExhaustedError",
    "InfrastructureError",
    "MalformedMessageError",
    "NotConnectedError",
    "PublishError",
    "SerializationError",
    "TopologyError",
]
