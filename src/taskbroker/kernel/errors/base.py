"""Root error class for the taskbroker error hierarchy."""

from __future__ import annotations

import json
from typing import Any


class BaseError(Exception):
    """Every error taskbroker raises, and the base processors may raise too.

    ``code`` is a stable slug for logs and event payloads; ``detail`` carries
    structured context. ``retryable`` lets a processor settle the retry
    decision explicitly: ``False`` dead-letters at once, ``True`` retries even
    when the class name looks permanent, ``None`` leaves it to name matching.
    """

    default_code: str = "base_error"

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        detail: dict[str, Any] | None = None,
        cause: BaseException | None = None,
        retryable: bool | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.detail: dict[str, Any] = dict(detail or {})
        self.retryable = retryable
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    def __str__(self) -> str:
        return self.message

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, code={self.code!r})"

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"code": self.code, "message": self.message, "detail": self.detail}
        if self.retryable is not None:
            payload["retryable"] = self.retryable
        if self.cause is not None:
            payload["cause"] = repr(self.cause)
        return payload

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, default=str)


__all__ = ["BaseError"]
