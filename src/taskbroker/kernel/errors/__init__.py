"""Kernel error hierarchy – public re-export surface.

Hierarchy::

    BaseError
    ├── DomainError              (domain.py)
    │   ├── ValidationError
    │   ├── NotFoundError
    │   ├── AuthenticationError
    │   └── AuthorizationError
    ├── ApplicationError         (application.py)
    └── InfrastructureError      (infrastructure.py)
        ├── BrokerError
        │   ├── NotConnectedError
        │   ├── ConnectionAttemptsExhaustedError
        │   ├── PublishError
        │   └── TopologyError
        └── SerializationError
            └── MalformedMessageError
"""

from taskbroker.kernel.errors.application import ApplicationError
from taskbroker.kernel.errors.base import BaseError
from taskbroker.kernel.errors.domain import (
    AuthenticationError,
    AuthorizationError,
    DomainError,
    NotFoundError,
    ValidationError,
)
from taskbroker.kernel.errors.infrastructure import (
    BrokerError,
    ConnectionAttemptsExhaustedError,
    InfrastructureError,
    MalformedMessageError,
    NotConnectedError,
    PublishError,
    SerializationError,
    TopologyError,
)

__all__ = [
    "ApplicationError",
    "AuthenticationError",
    "AuthorizationError",
    "BaseError",
    "BrokerError",
    "ConnectionAttemptsExhaustedError",
    "DomainError",
    "InfrastructureError",
    "MalformedMessageError",
    "NotConnectedError",
    "NotFoundError",
    "PublishError",
    "SerializationError",
    "TopologyError",
    "ValidationError",
]
