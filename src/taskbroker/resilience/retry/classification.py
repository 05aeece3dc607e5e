"""Resilience – permanent vs. retryable failure classification."""
from __future__ import annotations

from typing import Callable, Iterable

PERMANENT_ERROR_MARKERS: tuple[str, ...] = (
    "ValidationError",
    "AuthenticationError",
    "AuthorizationError",
    "NotFoundError",
)

ErrorPredicate = Callable[[BaseException], bool]


def is_permanent_error(
    exc: BaseException,
    markers: Iterable[str] = PERMANENT_ERROR_MARKERS,
) -> bool:
    """Decide whether retrying *exc* is pointless.

    An explicit ``retryable`` attribute (see ``BaseError``) wins. Otherwise the
    error is permanent when a class name in its MRO, or its message, contains
    one of *markers*.
    """
    retryable = getattr(exc, "retryable", None)
    if isinstance(retryable, bool):
        return not retryable
    names = [cls.__name__ for cls in type(exc).__mro__]
    text = str(exc)
    return any(marker in name for marker in markers for name in names) or any(
        marker in text for marker in markers
    )


def is_retryable_error(exc: BaseException) -> bool:
    return not is_permanent_error(exc)


def permanent_error_predicate(*extra_markers: str) -> ErrorPredicate:
    """Build a predicate recognising the default markers plus *extra_markers*."""
    markers = PERMANENT_ERROR_MARKERS + tuple(extra_markers)

    def _predicate(exc: BaseException) -> bool:
        return is_permanent_error(exc, markers)

    return _predicate


__all__ = [
    "ErrorPredicate",
    "PERMANENT_ERROR_MARKERS",
    "is_permanent_error",
    "is_retryable_error",
    "permanent_error_predicate",
]
