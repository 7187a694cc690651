"""Unit tests covering environment variable overrides for settings."""

from __future__ import annotations

import textwrap

from coredata.settings.config import ConfigurationStruct, DBConfiguration, reload_settings


def _clear_env(monkeypatch: object, *names: str) -> None:
    """Remove env vars for every alias and prefixed variant."""

    for name in names:
        monkeypatch.delenv(name, raising=False)
        if name.startswith("COREDATA_"):
            monkeypatch.delenv(name.removeprefix("COREDATA_"), raising=False)
        else:
            monkeypatch.delenv(f"COREDATA_{name}", raising=False)


def test_local_env_forces_memory_backend(monkeypatch: object) -> None:
    """The local profile never talks to a real document store."""

    _clear_env(monkeypatch, "COREDATA_DATABASE__BACKEND", "DB_BACKEND")
    monkeypatch.setenv("COREDATA_DATABASE__BACKEND", "mongo")

    settings = reload_settings(env="local")

    assert settings.is_local
    assert settings.database.backend == "memory"
    assert settings.observability.structured_logging is False


def test_database_env_overrides(monkeypatch: object) -> None:
    """Nested database settings follow COREDATA_DATABASE__* variables."""

    _clear_env(
        monkeypatch,
        "COREDATA_DATABASE__HOST",
        "COREDATA_DATABASE__PORT",
        "COREDATA_DATABASE__NAME",
        "COREDATA_DATABASE__TIMEOUT_MS",
        "DB_HOST",
        "DB_PORT",
        "DB_NAME",
        "DB_TIMEOUT_MS",
    )

    default_settings = reload_settings(env="dev")
    assert default_settings.database.backend == "mongo"
    assert default_settings.database.host == "localhost"
    assert default_settings.database.port == 27017

    monkeypatch.setenv("COREDATA_DATABASE__HOST", "mongo.internal")
    monkeypatch.setenv("COREDATA_DATABASE__PORT", "27018")
    monkeypatch.setenv("COREDATA_DATABASE__NAME", "edge")
    monkeypatch.setenv("COREDATA_DATABASE__TIMEOUT_MS", "1500")

    overridden = reload_settings(env="dev")
    assert overridden.database.host == "mongo.internal"
    assert overridden.database.port == 27018
    assert overridden.database.name == "edge"
    assert overridden.database.timeout_ms == 1500


def test_flat_database_aliases(monkeypatch: object) -> None:
    """Unprefixed DB_* names populate the database section."""

    _clear_env(monkeypatch, "COREDATA_DATABASE__HOST", "DB_HOST", "DB_USERNAME", "DB_PASSWORD")
    monkeypatch.setenv("DB_HOST", "flat-host")
    monkeypatch.setenv("DB_USERNAME", "core")
    monkeypatch.setenv("DB_PASSWORD", "secret")

    settings = reload_settings(env="dev")

    assert settings.database.host == "flat-host"
    assert settings.database.username == "core"
    assert settings.database.password == "secret"


def test_export_client_settings_and_database_view(monkeypatch: object) -> None:
    """The export client's flat record maps onto store connection settings."""

    _clear_env(
        monkeypatch,
        "COREDATA_EXPORT_CLIENT__MONGO_URL",
        "COREDATA_EXPORT_CLIENT__MONGO_PORT",
        "COREDATA_EXPORT_CLIENT__DISTRO_HOST",
        "EXPORT_MONGO_URL",
        "EXPORT_MONGO_PORT",
        "EXPORT_DISTRO_HOST",
    )

    defaults = reload_settings(env="dev").export_client
    assert defaults.port == 48071
    assert defaults.distro_port == 48070
    assert defaults.consul_port == 8500

    monkeypatch.setenv("COREDATA_EXPORT_CLIENT__MONGO_URL", "export-mongo")
    monkeypatch.setenv("COREDATA_EXPORT_CLIENT__MONGO_PORT", "27020")
    monkeypatch.setenv("COREDATA_EXPORT_CLIENT__DISTRO_HOST", "distro")

    export = reload_settings(env="dev").export_client
    assert isinstance(export, ConfigurationStruct)
    assert export.distro_host == "distro"

    database = export.database()
    assert isinstance(database, DBConfiguration)
    assert database.backend == "mongo"
    assert database.host == "export-mongo"
    assert database.port == 27020
    assert database.name == export.mongo_database


def test_toml_settings_file(monkeypatch: object, tmp_path) -> None:
    """Values from COREDATA_SETTINGS_FILE apply when no env override exists."""

    _clear_env(monkeypatch, "COREDATA_RETENTION__MAX_EVENT_AGE_MS", "RETENTION_MAX_EVENT_AGE_MS")
    config_file = tmp_path / "settings.toml"
    config_file.write_text(
        textwrap.dedent(
            """
            [retention]
            max_event_age_ms = 86400000
            scrub_pushed = true
            """
        ),
        encoding="utf-8",
    )
    monkeypatch.setenv("COREDATA_SETTINGS_FILE", str(config_file))

    settings = reload_settings(env="dev")

    assert settings.retention.max_event_age_ms == 86400000
    assert settings.retention.scrub_pushed is True
    assert config_file in settings.config_files
