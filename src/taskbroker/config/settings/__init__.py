"""Config settings – 12-factor env-based configuration."""
from taskbroker.config.settings.base import Settings
from taskbroker.config.settings.connection import ConnectionPoolConfig
from taskbroker.config.settings.loaders import DotenvSettingsLoader, EnvSettingsLoader, SettingsLoader

__all__ = [
    "ConnectionPoolConfig",
    "DotenvSettingsLoader",
    "EnvSettingsLoader",
    "Settings",
    "SettingsLoader",
]
