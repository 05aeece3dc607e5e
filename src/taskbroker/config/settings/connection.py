"""Config settings – broker connection settings."""
from __future__ import annotations

import dataclasses
from typing import ClassVar
from urllib.parse import quote, urlencode

from taskbroker.config.settings.base import Settings
from taskbroker.config.validation import InvalidSettingValueError


@dataclasses.dataclass(frozen=True)
class ConnectionPoolConfig(Settings):
    """RabbitMQ connection settings, read from ``RABBITMQ_*`` variables.

    ``reconnect_delay`` is in milliseconds, ``heartbeat`` in seconds.
    """

    _prefix: ClassVar[str] = "RABBITMQ"

    host: str = "localhost"
    port: int = 5672
    username: str = "guest"
    password: str = dataclasses.field(default="guest", repr=False)
    vhost: str = "/"
    max_connections: int = 10
    reconnect_delay: int = 5000
    heartbeat: int = 60
    connection_name: str = "taskbroker"
    max_connection_attempts: int = 10
    delayed_exchange_plugin: bool = False

    def _validate(self) -> None:
        if not 0 < self.port < 65536:
            raise InvalidSettingValueError("port", self.port, "must be in 1..65535")
        if self.reconnect_delay <= 0:
            raise InvalidSettingValueError("reconnect_delay", self.reconnect_delay, "must be positive")
        if self.heartbeat < 0:
            raise InvalidSettingValueError("heartbeat", self.heartbeat, "must not be negative")
        if self.max_connection_attempts <= 0:
            raise InvalidSettingValueError(
                "max_connection_attempts", self.max_connection_attempts, "must be positive"
            )
        if self.max_connections <= 0:
            raise InvalidSettingValueError("max_connections", self.max_connections, "must be positive")

    @property
    def amqp_url(self) -> str:
        vhost = "/" if self.vhost in ("", "/") else "/" + quote(self.vhost.lstrip("/"), safe="")
        return (
            f"amqp://{quote(self.username, safe='')}:{quote(self.password, safe='')}"
            f"@{self.host}:{self.port}{vhost}"
        )

    @property
    def connection_url(self) -> str:
        """``amqp_url`` plus the ``heartbeat`` and ``name`` query parameters."""
        query = urlencode({"heartbeat": self.heartbeat, "name": self.connection_name})
        return f"{self.amqp_url}?{query}"

    @property
    def safe_url(self) -> str:
        """``amqp_url`` without credentials, for logs."""
        return f"amqp://{self.host}:{self.port}{self.vhost if self.vhost.startswith('/') else '/' + self.vhost}"


__all__ = ["ConnectionPoolConfig"]
