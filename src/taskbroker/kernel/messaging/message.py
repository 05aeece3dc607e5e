"""Kernel messaging – task envelope primitives.

Wire format (UTF-8 JSON)::

    {
        "id": "<uuid>",
        "payload": <any JSON>,
        "metadata": {
            "id": "<uuid>",
            "correlationId": "<uuid>",
            "timestamp": "<iso-8601>",
            "retryCount": 0,
            "maxRetries": 3,
            "priority": "normal",
            "originalRoutingKey": "task.normal.<type>"
        },
        "enqueuedAt": "<iso-8601>"
    }
"""
from __future__ import annotations

import dataclasses
import json
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from taskbroker.kernel.errors import MalformedMessageError
from taskbroker.kernel.messaging.priority import TaskPriority


def _iso(value: datetime) -> str:
    return value.isoformat()


def _parse_datetime(raw: Any) -> datetime:
    if not isinstance(raw, str):
        raise ValueError(f"expected ISO-8601 string, got {type(raw).__name__}")
    value = datetime.fromisoformat(raw)
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value


@dataclasses.dataclass(frozen=True)
class MessageMetadata:
    """Routing and retry bookkeeping carried inside every envelope."""

    id: str
    priority: TaskPriority = TaskPriority.NORMAL
    correlation_id: str | None = None
    timestamp: datetime = dataclasses.field(default_factory=lambda: datetime.now(UTC))
    retry_count: int = 0
    max_retries: int = 3
    original_routing_key: str | None = None

    def with_retry(self, retry_count: int, timestamp: datetime) -> "MessageMetadata":
        return dataclasses.replace(self, retry_count=retry_count, timestamp=timestamp)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "correlationId": self.correlation_id,
            "timestamp": _iso(self.timestamp),
            "retryCount": self.retry_count,
            "maxRetries": self.max_retries,
            "priority": self.priority.value,
            "originalRoutingKey": self.original_routing_key,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MessageMetadata":
        retry_count = int(data["retryCount"])
        max_retries = int(data["maxRetries"])
        if retry_count < 0 or max_retries < 0:
            raise ValueError("retry counters must be non-negative")
        return cls(
            id=str(data["id"]),
            priority=TaskPriority(data["priority"]),
            correlation_id=data.get("correlationId"),
            timestamp=_parse_datetime(data["timestamp"]),
            retry_count=retry_count,
            max_retries=max_retries,
            original_routing_key=data.get("originalRoutingKey"),
        )


@dataclasses.dataclass(frozen=True)
class TaskMessage:
    """A unit of work travelling through the broker.

    Identity is ``id``. Only the metadata changes between deliveries, and only
    through :meth:`for_retry`, which yields a new message for the retry path.
    """

    id: str
    payload: Any
    metadata: MessageMetadata
    enqueued_at: datetime = dataclasses.field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def create(
        cls,
        task_type: str,
        payload: Any,
        *,
        priority: TaskPriority = TaskPriority.NORMAL,
        correlation_id: str | None = None,
        max_retries: int = 3,
        now: datetime | None = None,
    ) -> "TaskMessage":
        message_id = str(uuid4())
        created = now or datetime.now(UTC)
        metadata = MessageMetadata(
            id=message_id,
            priority=priority,
            correlation_id=correlation_id or str(uuid4()),
            timestamp=created,
            retry_count=0,
            max_retries=max_retries,
            original_routing_key=priority.routing_key(task_type),
        )
        return cls(id=message_id, payload=payload, metadata=metadata, enqueued_at=created)

    def for_retry(self, retry_count: int, timestamp: datetime) -> "TaskMessage":
        return dataclasses.replace(self, metadata=self.metadata.with_retry(retry_count, timestamp))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "payload": self.payload,
            "metadata": self.metadata.to_dict(),
            "enqueuedAt": _iso(self.enqueued_at),
        }

    def to_json(self) -> bytes:
        return json.dumps(self.to_dict(), default=str).encode("utf-8")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TaskMessage":
        try:
            return cls(
                id=str(data["id"]),
                payload=data["payload"],
                metadata=MessageMetadata.from_dict(data["metadata"]),
                enqueued_at=_parse_datetime(data["enqueuedAt"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise MalformedMessageError(
                f"Invalid task envelope: {exc}", payload_type="TaskMessage", cause=exc
            ) from exc

    @classmethod
    def from_json(cls, body: bytes | str) -> "TaskMessage":
        try:
            data = json.loads(body)
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise MalformedMessageError(
                f"Task envelope is not valid JSON: {exc}", payload_type="TaskMessage", cause=exc
            ) from exc
        if not isinstance(data, dict):
            raise MalformedMessageError(
                "Task envelope must be a JSON object", payload_type="TaskMessage"
            )
        return cls.from_dict(data)


@dataclasses.dataclass(frozen=True)
class DeadLetterMessage:
    """A task that exhausted its retries or failed permanently.

    Built only at the moment of dead-lettering; the broker's DLQ holds the
    durable copy.
    """

    message: TaskMessage
    original_queue: str
    failure_reason: str
    original_error: BaseException
    failed_at: datetime = dataclasses.field(default_factory=lambda: datetime.now(UTC))

    @property
    def id(self) -> str:
        return self.message.id

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.message.to_dict(),
            "originalQueue": self.original_queue,
            "failureReason": self.failure_reason,
            "failedAt": _iso(self.failed_at),
            "originalError": type(self.original_error).__name__,
        }


__all__ = ["DeadLetterMessage", "MessageMetadata", "TaskMessage"]
