"""Configuration loading.

Settings are loaded in priority order (highest first):
  1. Environment variables  (DASHGATE__GRAFANA__URL=http://grafana:3000)
  2. dashgate.yaml          (searched in cwd, then platform config dir)
  3. Hardcoded defaults

The config file is optional; all fields have sensible defaults. Credentials
mounted as secret files are read separately, see ``dashgate.credentials``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import platformdirs
from pydantic import BaseModel
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

_DEFAULT_DATA_DIR = platformdirs.user_data_dir("dashgate")
_DEFAULT_DB_PATH = str(Path(_DEFAULT_DATA_DIR) / "render-cache.db")


def _find_config_file() -> str | None:
    """Return the path of the first dashgate.yaml found, or None."""
    candidates = [
        Path("dashgate.yaml"),
        Path(platformdirs.user_config_dir("dashgate")) / "dashgate.yaml",
    ]
    for path in candidates:
        if path.exists():
            return str(path)
    return None


class ServerSettings(BaseModel):
    host: str = "0.0.0.0"
    port: int = 3100
    cors_origins: list[str] = ["*"]
    static_dir: str | None = None


class GrafanaSettings(BaseModel):
    url: str = "http://grafana:3000"
    token: str = ""
    token_file: str = "/run/secrets/grafana_token"
    timeout_seconds: float = 10.0


class PrometheusSettings(BaseModel):
    url: str = "http://prometheus:9090"
    timeout_seconds: float = 10.0


class CacheSettings(BaseModel):
    backend: Literal["redis", "sqlite", "none"] = "redis"
    redis_url: str = "redis://redis:6379"
    redis_password_file: str = "/run/secrets/redis_password"
    ttl_seconds: int = 300
    db_path: str = _DEFAULT_DB_PATH
    cleanup_interval_minutes: int = 30


class RateLimitSettings(BaseModel):
    # Per client address, in the "<count>/<period>" notation of the limits library
    render: str = "30/minute"
    snapshot: str = "6/minute"


class LoggingSettings(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    format: Literal["json", "text"] = "json"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # Double-underscore separates nesting: DASHGATE__SERVER__PORT=9090
        env_prefix="DASHGATE__",
        env_nested_delimiter="__",
        yaml_file=_find_config_file(),
        yaml_file_encoding="utf-8",
    )

    server: ServerSettings = ServerSettings()
    grafana: GrafanaSettings = GrafanaSettings()
    prometheus: PrometheusSettings = PrometheusSettings()
    cache: CacheSettings = CacheSettings()
    rate_limit: RateLimitSettings = RateLimitSettings()
    logging: LoggingSettings = LoggingSettings()

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
        **kwargs: Any,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,  # Constructor args (highest priority)
            env_settings,  # Environment variables
            YamlConfigSettingsSource(settings_cls),  # YAML file
            # dotenv and pydantic file secrets intentionally excluded;
            # credential files are handled in dashgate.credentials
        )
