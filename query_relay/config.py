"""
Configuration settings for the query relay.

Uses Pydantic Settings to load environment variables (and an optional `.env`
file) for the database connection, the broker target, timeouts, and logging.
A YAML settings file in the legacy `postgres_config` / `rabbit_config` layout
can be overlaid on top via `load_settings`.
"""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from query_relay.errors import ConfigurationError

DEFAULT_QUERY = "SELECT * FROM student"

# YAML section/key -> Settings field name
_YAML_FIELD_MAP: Dict[str, Dict[str, str]] = {
    "postgres_config": {
        "host": "db_host",
        "port": "db_port",
        "database": "db_name",
        "user": "db_user",
        "password": "db_password",
        "query": "relay_query",
    },
    "rabbit_config": {
        "host": "broker_host",
        "port": "broker_port",
        "virtualHost": "broker_vhost",
        "user": "broker_user",
        "password": "broker_password",
        "queueName": "broker_queue",
        "durable": "queue_durable",
        "exclusive": "queue_exclusive",
        "autoDelete": "queue_auto_delete",
    },
}


class Settings(BaseSettings):
    # Database
    db_host: str = Field("localhost", alias="DB_HOST")
    db_port: int = Field(5432, alias="DB_PORT")
    db_user: str = Field("postgres", alias="DB_USER")
    db_password: str = Field("postgres", alias="DB_PASSWORD")
    db_name: str = Field("postgres", alias="DB_NAME")
    db_connect_timeout_s: int = Field(10, alias="DB_CONNECT_TIMEOUT_S", ge=1)
    db_statement_timeout_ms: int = Field(60_000, alias="DB_STATEMENT_TIMEOUT_MS", ge=0)
    db_fetch_batch_size: int = Field(1_000, alias="DB_FETCH_BATCH_SIZE", ge=1)
    relay_query: str = Field(DEFAULT_QUERY, alias="RELAY_QUERY")

    # Broker
    broker_host: str = Field("localhost", alias="BROKER_HOST")
    broker_port: int = Field(5672, alias="BROKER_PORT")
    broker_vhost: str = Field("/", alias="BROKER_VHOST")
    broker_user: str = Field("guest", alias="BROKER_USER")
    broker_password: str = Field("guest", alias="BROKER_PASSWORD")
    broker_queue: str = Field("query-relay", alias="BROKER_QUEUE", min_length=1)
    queue_durable: bool = Field(False, alias="QUEUE_DURABLE")
    queue_exclusive: bool = Field(False, alias="QUEUE_EXCLUSIVE")
    queue_auto_delete: bool = Field(False, alias="QUEUE_AUTO_DELETE")
    broker_connect_timeout_s: float = Field(10.0, alias="BROKER_CONNECT_TIMEOUT_S", gt=0)
    broker_blocked_timeout_s: float = Field(30.0, alias="BROKER_BLOCKED_TIMEOUT_S", gt=0)
    broker_heartbeat_s: int = Field(30, alias="BROKER_HEARTBEAT_S", ge=1)
    publish_confirms: bool = Field(True, alias="PUBLISH_CONFIRMS")
    publish_persistent: bool = Field(False, alias="PUBLISH_PERSISTENT")

    # Application
    app_env: str = Field("development", alias="APP_ENV")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(False, alias="LOG_JSON")
    pipeline_max_attempts: int = Field(1, alias="PIPELINE_MAX_ATTEMPTS", ge=1)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    def masked(self) -> Dict[str, Any]:
        """Settings as a dict with credentials replaced, safe for display and logs."""
        values = self.model_dump()
        for key in ("db_password", "broker_password"):
            values[key] = "***"
        return values


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Retrieve a cached instance of Settings to avoid repeated env parsing.
    """
    return Settings()


def _overrides_from_yaml(document: Any, path: Path) -> Dict[str, Any]:
    if not isinstance(document, dict):
        raise ConfigurationError(
            "Settings file must contain a mapping at the top level", context={"path": str(path)}
        )
    overrides: Dict[str, Any] = {}
    for section, fields in _YAML_FIELD_MAP.items():
        values = document.get(section)
        if values is None:
            continue
        if not isinstance(values, dict):
            raise ConfigurationError(
                f"Section '{section}' must be a mapping", context={"path": str(path)}
            )
        for key, field_name in fields.items():
            if key in values:
                overrides[field_name] = values[key]
    return overrides


def load_settings(path: Optional[Path | str] = None, **overrides: Any) -> Settings:
    """
    Build Settings from the environment, a YAML file, and explicit overrides.

    Precedence (highest first): keyword overrides, YAML file values,
    environment / `.env`, field defaults.

    Parameters
    ----------
    path : Path | str | None
        Optional YAML file with `postgres_config` and `rabbit_config` sections.
    **overrides
        Field-name overrides (e.g. `broker_queue="jobs"`); None values are ignored.

    Raises
    ------
    ConfigurationError
        If the file cannot be read or parsed, or the merged values fail validation.
    """
    values: Dict[str, Any] = {}
    if path is not None:
        path = Path(path)
        try:
            with path.open("r", encoding="utf-8") as f:
                document = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as exc:
            raise ConfigurationError(
                "Could not load settings file", cause=exc, context={"path": str(path)}
            ) from exc
        values.update(_overrides_from_yaml(document, path))

    values.update({key: value for key, value in overrides.items() if value is not None})

    try:
        return Settings(**values)
    except ValidationError as exc:
        raise ConfigurationError("Invalid settings", cause=exc) from exc


__all__ = ["DEFAULT_QUERY", "Settings", "get_settings", "load_settings"]
