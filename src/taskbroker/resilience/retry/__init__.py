"""Resilience – retry delays with configurable backoff and jitter strategies."""
from taskbroker.resilience.retry.backoff import BackoffStrategy, ExponentialBackoff, LinearBackoff
from taskbroker.resilience.retry.classification import (
    PERMANENT_ERROR_MARKERS,
    ErrorPredicate,
    is_permanent_error,
    is_retryable_error,
    permanent_error_predicate,
)
from taskbroker.resilience.retry.jitter import AdditiveJitter, JitterStrategy, NoJitter
from taskbroker.resilience.retry.policy import MAX_RETRY_DELAY_MS, RetryDelayPolicy

__all__ = [
    "AdditiveJitter", "BackoffStrategy", "ErrorPredicate", "ExponentialBackoff",
    "JitterStrategy", "LinearBackoff", "MAX_RETRY_DELAY_MS", "NoJitter",
    "PERMANENT_ERROR_MARKERS", "RetryDelayPolicy", "is_permanent_error",
    "is_retryable_error", "permanent_error_predicate",
]
