"""Config settings – loaders that build a Settings subclass from variables.

``EnvSettingsLoader`` reads the process environment (or any mapping handed
to it). ``DotenvSettingsLoader`` layers a dotenv file under the environment
without writing the file's values back into ``os.environ``.
"""
from __future__ import annotations

import abc
import dataclasses
import os
from collections.abc import Callable, Mapping
from typing import Any, TypeVar

from dotenv import dotenv_values

from taskbroker.config.settings.base import Settings
from taskbroker.config.validation import ConfigError, MissingRequiredSettingError
from taskbroker.observability.logging import get_logger

T = TypeVar("T", bound=Settings)

logger = get_logger(__name__)


def _parse_bool(raw: str) -> bool:
    value = raw.strip().lower()
    if value in {"1", "true", "yes", "on"}:
        return True
    if value in {"0", "false", "no", "off", ""}:
        return False
    raise ValueError("expected a boolean flag")


_PARSERS: dict[str, Callable[[str], Any]] = {
    "bool": _parse_bool,
    "int": lambda raw: int(raw.strip()),
    "float": lambda raw: float(raw.strip()),
}


def _type_name(field: dataclasses.Field[Any]) -> str:
    # Annotations are strings under ``from __future__ import annotations``.
    if isinstance(field.type, str):
        return field.type
    return getattr(field.type, "__name__", "")


def _is_required(field: dataclasses.Field[Any]) -> bool:
    return field.default is dataclasses.MISSING and field.default_factory is dataclasses.MISSING


def env_key(settings_class: type[Settings], field_name: str) -> str:
    """``RABBITMQ`` + ``reconnect_delay`` -> ``RABBITMQ_RECONNECT_DELAY``."""
    prefix = settings_class._prefix
    return f"{prefix}_{field_name}".upper() if prefix else field_name.upper()


class SettingsLoader(abc.ABC):
    """Port: build a settings instance from some external source."""

    @abc.abstractmethod
    def load(self, settings_class: type[T]) -> T: ...


class EnvSettingsLoader(SettingsLoader):
    """Build settings from a mapping of variables, ``os.environ`` by default.

    Unset variables fall back to the field default. A value that does not
    parse raises ``ConfigError`` naming the variable; a value that parses but
    fails the class's own checks keeps its ``InvalidSettingValueError``.
    """

    def __init__(self, environ: Mapping[str, str] | None = None) -> None:
        self._environ = environ

    def variables(self) -> Mapping[str, str]:
        return os.environ if self._environ is None else self._environ

    def load(self, settings_class: type[T]) -> T:
        variables = self.variables()
        values: dict[str, Any] = {}
        for field in dataclasses.fields(settings_class):
            key = env_key(settings_class, field.name)
            raw = variables.get(key)
            if raw is None:
                if _is_required(field):
                    raise MissingRequiredSettingError(key)
                continue
            parse = _PARSERS.get(_type_name(field), str)
            try:
                values[field.name] = parse(raw)
            except ValueError as exc:
                raise ConfigError(f"Cannot parse {key}={raw!r}: {exc}", cause=exc) from exc

        try:
            settings = settings_class(**values)
        except ConfigError:
            raise
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"Cannot build {settings_class.__name__}: {exc}", cause=exc) from exc
        logger.debug("settings_loaded", settings=settings_class.__name__, overridden=sorted(values))
        return settings


class DotenvSettingsLoader(EnvSettingsLoader):
    """Read a dotenv file first; real environment variables win unless ``override``."""

    def __init__(self, env_file: str = ".env", override: bool = False) -> None:
        super().__init__()
        self._env_file = env_file
        self._override = override

    def variables(self) -> Mapping[str, str]:
        from_file = {k: v for k, v in dotenv_values(self._env_file).items() if v is not None}
        if self._override:
            return {**os.environ, **from_file}
        return {**from_file, **os.environ}


__all__ = ["DotenvSettingsLoader", "EnvSettingsLoader", "SettingsLoader", "env_key"]
