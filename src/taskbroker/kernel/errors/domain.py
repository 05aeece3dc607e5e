"""Domain errors – permanent task failures.

A task processor raises one of these when retrying cannot help. Their class
names are on the default permanent-error deny-list, so the dispatcher routes
them straight to the dead-letter queue.
"""

from __future__ import annotations

from typing import Any

from taskbroker.kernel.errors.base import BaseError


class DomainError(BaseError):
    """Raised when a task payload or its target violates a business rule."""

    default_code = "domain_error"


class ValidationError(DomainError):
    """The task payload is unusable as sent.

    ``errors`` holds one dict per offending field, e.g.
    ``{"field": "to", "reason": "missing"}``, and is copied into ``to_dict``.
    """

    default_code = "validation_error"

    def __init__(self, message: str, *, errors: list[dict[str, Any]] | None = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.errors = list(errors or [])

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "errors": self.errors}


class NotFoundError(DomainError):
    default_code = "not_found"

    def __init__(self, resource: str, identifier: Any = None, **kwargs: Any) -> None:
        label = resource if identifier is None else f"{resource} '{identifier}'"
        super().__init__(f"{label} not found", detail={"resource": resource, "identifier": identifier}, **kwargs)
        self.resource = resource
        self.identifier = identifier


class AuthenticationError(DomainError):
    """Credentials used by the task were missing or rejected."""

    default_code = "authentication_error"


class AuthorizationError(DomainError):
    """The task's principal lacks the required permission."""

    default_code = "authorization_error"


__all__ = [
    "AuthenticationError",
    "AuthorizationError",
    "DomainError",
    "NotFoundError",
    "ValidationError",
]
