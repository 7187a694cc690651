"""Public interface for coredata configuration settings."""

from .config import (
    ENV_VAR_NAME,
    PROJECT_ROOT,
    ConfigurationStruct,
    DatabaseSettings,
    DBConfiguration,
    ExportClientSettings,
    Settings,
    get_settings,
    reload_settings,
)

__all__ = [
    "Settings",
    "DatabaseSettings",
    "DBConfiguration",
    "ExportClientSettings",
    "ConfigurationStruct",
    "get_settings",
    "reload_settings",
    "PROJECT_ROOT",
    "ENV_VAR_NAME",
]
