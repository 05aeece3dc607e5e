"""Config settings – Settings base class."""
from __future__ import annotations

import dataclasses
from typing import ClassVar


@dataclasses.dataclass(frozen=True)
class Settings:
    """Frozen settings read from ``<_prefix>_<FIELD>`` variables.

    Subclasses check their values in ``_validate``; an invalid value raises
    during construction, so a loaded instance is always usable.
    """

    _prefix: ClassVar[str] = ""

    def __post_init__(self) -> None:
        self._validate()

    def _validate(self) -> None:
        """Hook for subclasses."""


__all__ = ["Settings"]
