"""Configuration loader for coredata services using Pydantic settings."""

from __future__ import annotations

import os
import tomllib
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

from pydantic import AliasChoices, Field, model_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

ENV_VAR_NAME = "COREDATA_ENV"
DEFAULT_ENV = "local"
PROJECT_ROOT = Path(__file__).resolve().parents[3]
CONFIG_DIR = PROJECT_ROOT / "config"
DEFAULT_CONFIG_FILE = CONFIG_DIR / "settings.default.toml"
LOCAL_CONFIG_FILE = CONFIG_DIR / "settings.local.toml"
SETTINGS_FILE_ENV_VAR = "COREDATA_SETTINGS_FILE"


def _resolve_env(explicit_env: str | None = None) -> str:
    """Return the active environment name.

    Args:
        explicit_env: Environment value supplied directly by the caller.

    Returns:
        A stripped environment name, falling back to ``DEFAULT_ENV``.
    """

    env = explicit_env or os.getenv(ENV_VAR_NAME) or DEFAULT_ENV
    return env.strip()


def _env_file_candidates(env: str) -> list[Path]:
    """List candidate ``.env`` files used during settings resolution."""

    return [
        PROJECT_ROOT / ".env",
        PROJECT_ROOT / f".env.{env}",
        PROJECT_ROOT / ".env.local",
    ]


def _resolve_config_path(raw_path: str | None) -> Path | None:
    """Return an absolute config path from user input."""

    if not raw_path:
        return None
    candidate = Path(raw_path).expanduser()
    if not candidate.is_absolute():
        candidate = (PROJECT_ROOT / candidate).resolve()
    return candidate


def _config_file_priority(include_missing: bool = False) -> tuple[Path, ...]:
    """Return config files in descending precedence order."""

    ordered: list[Path] = []
    env_override = _resolve_config_path(os.getenv(SETTINGS_FILE_ENV_VAR))
    if env_override:
        ordered.append(env_override)
    ordered.append(LOCAL_CONFIG_FILE)
    ordered.append(DEFAULT_CONFIG_FILE)
    if include_missing:
        return tuple(ordered)
    return tuple(path for path in ordered if path.exists())


class TomlConfigSettingsSource(PydanticBaseSettingsSource):
    """Pydantic settings source that loads values from a TOML file."""

    def __init__(self, settings_cls: type[BaseSettings], path: Path) -> None:
        super().__init__(settings_cls)
        self.path = path
        self._data: dict[str, Any] | None = None

    def _load(self) -> dict[str, Any]:
        if self._data is not None:
            return self._data
        if not self.path.exists():
            self._data = {}
            return self._data
        try:
            with self.path.open("rb") as handle:
                self._data = tomllib.load(handle)
        except tomllib.TOMLDecodeError as exc:  # pragma: no cover - invalid files surface immediately
            raise ValueError(f"Invalid TOML syntax in {self.path}") from exc
        return self._data

    def __call__(self) -> dict[str, Any]:  # pragma: no cover - trivial wrapper
        return self._load()

    def get_field_value(self, field_name: str, field):  # pragma: no cover - passthrough helper
        data = self._load()
        return data.get(field_name), field_name in data


class RuntimeSettings(BaseSettings):
    """Process-level runtime controls."""

    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True)

    log_level: str = Field(
        default="INFO",
        validation_alias=AliasChoices("LOG_LEVEL", "RUNTIME__LOG_LEVEL"),
    )


class DatabaseSettings(BaseSettings):
    """Connection parameters for the document store backing the data client."""

    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True)

    backend: Literal["mongo", "memory"] = Field(
        default="mongo",
        validation_alias=AliasChoices("DB_BACKEND", "DATABASE__BACKEND"),
    )
    host: str = Field(
        default="localhost",
        validation_alias=AliasChoices("DB_HOST", "DATABASE__HOST"),
    )
    port: int = Field(
        default=27017,
        validation_alias=AliasChoices("DB_PORT", "DATABASE__PORT"),
    )
    name: str = Field(
        default="coredata",
        validation_alias=AliasChoices("DB_NAME", "DATABASE__NAME"),
    )
    username: str | None = Field(
        default=None,
        validation_alias=AliasChoices("DB_USERNAME", "DATABASE__USERNAME"),
    )
    password: str | None = Field(
        default=None,
        validation_alias=AliasChoices("DB_PASSWORD", "DATABASE__PASSWORD"),
    )
    timeout_ms: int = Field(
        default=5000,
        validation_alias=AliasChoices("DB_TIMEOUT_MS", "DATABASE__TIMEOUT_MS"),
    )


DBConfiguration = DatabaseSettings


class ExportClientSettings(BaseSettings):
    """Flat configuration record consumed by the export client service."""

    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True)

    hostname: str = Field(
        default="localhost",
        validation_alias=AliasChoices("EXPORT_HOSTNAME", "EXPORT_CLIENT__HOSTNAME"),
    )
    port: int = Field(
        default=48071,
        validation_alias=AliasChoices("EXPORT_PORT", "EXPORT_CLIENT__PORT"),
    )
    db_type: Literal["mongodb", "memory"] = Field(
        default="mongodb",
        validation_alias=AliasChoices("EXPORT_DB_TYPE", "EXPORT_CLIENT__DB_TYPE"),
    )
    mongo_url: str = Field(
        default="localhost",
        validation_alias=AliasChoices("EXPORT_MONGO_URL", "EXPORT_CLIENT__MONGO_URL"),
    )
    mongo_username: str | None = Field(
        default=None,
        validation_alias=AliasChoices("EXPORT_MONGO_USERNAME", "EXPORT_CLIENT__MONGO_USERNAME"),
    )
    mongo_password: str | None = Field(
        default=None,
        validation_alias=AliasChoices("EXPORT_MONGO_PASSWORD", "EXPORT_CLIENT__MONGO_PASSWORD"),
    )
    mongo_database: str = Field(
        default="coredata",
        validation_alias=AliasChoices("EXPORT_MONGO_DATABASE", "EXPORT_CLIENT__MONGO_DATABASE"),
    )
    mongo_port: int = Field(
        default=27017,
        validation_alias=AliasChoices("EXPORT_MONGO_PORT", "EXPORT_CLIENT__MONGO_PORT"),
    )
    mongo_connect_timeout: int = Field(
        default=5000,
        validation_alias=AliasChoices("EXPORT_MONGO_CONNECT_TIMEOUT", "EXPORT_CLIENT__MONGO_CONNECT_TIMEOUT"),
    )
    mongo_socket_timeout: int = Field(
        default=50000,
        validation_alias=AliasChoices("EXPORT_MONGO_SOCKET_TIMEOUT", "EXPORT_CLIENT__MONGO_SOCKET_TIMEOUT"),
    )
    consul_host: str = Field(
        default="localhost",
        validation_alias=AliasChoices("EXPORT_CONSUL_HOST", "EXPORT_CLIENT__CONSUL_HOST"),
    )
    consul_port: int = Field(
        default=8500,
        validation_alias=AliasChoices("EXPORT_CONSUL_PORT", "EXPORT_CLIENT__CONSUL_PORT"),
    )
    check_interval: str = Field(
        default="10s",
        validation_alias=AliasChoices("EXPORT_CHECK_INTERVAL", "EXPORT_CLIENT__CHECK_INTERVAL"),
    )
    consul_profiles_active: str = Field(
        default="default",
        validation_alias=AliasChoices("EXPORT_CONSUL_PROFILES_ACTIVE", "EXPORT_CLIENT__CONSUL_PROFILES_ACTIVE"),
    )
    distro_host: str = Field(
        default="localhost",
        validation_alias=AliasChoices("EXPORT_DISTRO_HOST", "EXPORT_CLIENT__DISTRO_HOST"),
    )
    distro_port: int = Field(
        default=48070,
        validation_alias=AliasChoices("EXPORT_DISTRO_PORT", "EXPORT_CLIENT__DISTRO_PORT"),
    )

    def database(self) -> DatabaseSettings:
        """Return the export client's store parameters as a :class:`DatabaseSettings`."""

        return DatabaseSettings(
            backend="memory" if self.db_type == "memory" else "mongo",
            host=self.mongo_url,
            port=self.mongo_port,
            name=self.mongo_database,
            username=self.mongo_username,
            password=self.mongo_password,
            timeout_ms=self.mongo_connect_timeout,
        )


ConfigurationStruct = ExportClientSettings


class RetentionSettings(BaseSettings):
    """Controls for the event retention job."""

    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True)

    max_event_age_ms: int = Field(
        default=0,
        validation_alias=AliasChoices("RETENTION_MAX_EVENT_AGE_MS", "RETENTION__MAX_EVENT_AGE_MS"),
    )
    scrub_pushed: bool = Field(
        default=False,
        validation_alias=AliasChoices("RETENTION_SCRUB_PUSHED", "RETENTION__SCRUB_PUSHED"),
    )
    dry_run: bool = Field(
        default=False,
        validation_alias=AliasChoices("RETENTION_DRY_RUN", "RETENTION__DRY_RUN"),
    )


class ObservabilitySettings(BaseSettings):
    """Logging and metrics configuration."""

    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True)

    structured_logging: bool = Field(
        default=True,
        validation_alias=AliasChoices("OBS_STRUCTURED_LOGGING", "OBSERVABILITY__STRUCTURED_LOGGING"),
    )
    statsd_host: str | None = Field(
        default=None,
        validation_alias=AliasChoices("OBS_STATSD_HOST", "OBSERVABILITY__STATSD_HOST"),
    )
    statsd_port: int = Field(
        default=8125,
        validation_alias=AliasChoices("OBS_STATSD_PORT", "OBSERVABILITY__STATSD_PORT"),
    )
    statsd_prefix: str = Field(
        default="coredata",
        validation_alias=AliasChoices("OBS_STATSD_PREFIX", "OBSERVABILITY__STATSD_PREFIX"),
    )
    service_name: str = Field(
        default="coredata",
        validation_alias=AliasChoices("OBS_SERVICE_NAME", "OBSERVABILITY__SERVICE_NAME"),
    )


class Settings(BaseSettings):
    """Top-level configuration model with nested sections for each subsystem."""

    env: str = Field(
        default_factory=lambda: _resolve_env(),
        validation_alias=AliasChoices("ENV", "ENVIRONMENT", "RUNTIME__ENV"),
    )
    project_root: Path = Field(default=PROJECT_ROOT)
    runtime: RuntimeSettings = Field(default_factory=RuntimeSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    export_client: ExportClientSettings = Field(default_factory=ExportClientSettings)
    retention: RetentionSettings = Field(default_factory=RetentionSettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)
    env_files: tuple[Path, ...] = Field(default_factory=tuple, exclude=True)
    config_files: tuple[Path, ...] = Field(default_factory=tuple, exclude=True)

    model_config = SettingsConfigDict(
        env_prefix="COREDATA_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        """Extend settings sources with TOML-based config files."""

        config_sources = [TomlConfigSettingsSource(settings_cls, path) for path in _config_file_priority()]
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            *config_sources,
            file_secret_settings,
        )

    @model_validator(mode="after")
    def _apply_environment_overrides(self) -> "Settings":
        """Force environment-specific defaults after basic resolution."""

        if self.env.lower() == "local":
            object.__setattr__(self, "database", self.database.model_copy(update={"backend": "memory"}))
            object.__setattr__(
                self,
                "observability",
                self.observability.model_copy(update={"structured_logging": False}),
            )
        return self

    @property
    def log_level(self) -> str:
        """str: Effective logging level for the running process."""

        return self.runtime.log_level

    @property
    def is_local(self) -> bool:
        """bool: True when the active environment is ``local``."""

        return self.env.lower() == "local"


def _load_settings(env: str | None = None) -> Settings:
    """Load settings with optional environment override.

    Args:
        env: Environment name supplied programmatically.

    Returns:
        Fully parsed :class:`Settings` instance with env files applied.
    """

    resolved_env = _resolve_env(env)
    candidate_files = [path for path in _env_file_candidates(resolved_env) if path.exists()]
    config_files = _config_file_priority()
    return Settings(
        _env_file=[str(path) for path in candidate_files],
        _env_file_encoding="utf-8",
        env=resolved_env,
        env_files=tuple(candidate_files),
        config_files=config_files,
    )


@lru_cache(maxsize=1)
def get_settings(env: str | None = None) -> Settings:
    """Return cached settings for the requested environment."""

    return _load_settings(env)


def reload_settings(env: str | None = None) -> Settings:
    """Clear the cached settings and reload from disk."""

    get_settings.cache_clear()
    return get_settings(env)


__all__ = [
    "Settings",
    "RuntimeSettings",
    "DatabaseSettings",
    "DBConfiguration",
    "ExportClientSettings",
    "ConfigurationStruct",
    "RetentionSettings",
    "ObservabilitySettings",
    "get_settings",
    "reload_settings",
    "PROJECT_ROOT",
    "ENV_VAR_NAME",
]
