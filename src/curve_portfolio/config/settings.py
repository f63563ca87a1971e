"""Application configuration for the portfolio simulator and its collaborators."""

from __future__ import annotations

import os
import tomllib
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, cast

from pydantic import AnyHttpUrl, BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_CONFIG_FILE = Path("config/app.toml")
CONFIG_FILE_ENV_VAR = "APP_CONFIG_FILE"
PROFILE_ENV_VAR = "APP_PROFILE"
DEFAULT_PROFILE = "default"


class StorageBackend(str, Enum):
    """Where portfolios live between requests."""

    MEMORY = "memory"
    SQLITE = "sqlite"


def _resolve_config_path() -> Path:
    env_value = os.getenv(CONFIG_FILE_ENV_VAR)
    if env_value:
        candidate = Path(env_value)
        if not candidate.is_absolute():
            candidate = Path.cwd() / candidate
        return candidate
    return Path.cwd() / DEFAULT_CONFIG_FILE


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    result: Dict[str, Any] = {**base}
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(cast(Dict[str, Any], result[key]), value)
        else:
            result[key] = value
    return result


def _select_profile(data: Dict[str, Any]) -> Tuple[Dict[str, Any], str]:
    if not data:
        return {}, DEFAULT_PROFILE
    base_section = cast(Dict[str, Any], data.get(DEFAULT_PROFILE, {}))
    requested = os.getenv(PROFILE_ENV_VAR)
    if not requested:
        profile_section = base_section.get("profile")
        if isinstance(profile_section, dict):
            requested = cast(Optional[str], profile_section.get("active"))
        elif isinstance(profile_section, str):
            requested = profile_section
    requested = (requested or DEFAULT_PROFILE).lower()

    if requested != DEFAULT_PROFILE and isinstance(data.get(requested), dict):
        return _deep_merge(base_section, cast(Dict[str, Any], data[requested])), requested
    if base_section:
        return dict(base_section), requested
    return data, requested


def _load_toml_config() -> Tuple[Dict[str, Any], Optional[Path]]:
    path = _resolve_config_path()
    if not path.exists():
        return {}, None
    with path.open("rb") as handle:
        payload = tomllib.load(handle)
    if not isinstance(payload, dict):
        return {}, path
    merged, profile = _select_profile(payload)
    merged = {k: v for k, v in merged.items()}
    merged["profile"] = {"active": profile, "config_file": str(path)}
    return merged, path


class ProfileConfig(BaseModel):
    """Which TOML profile produced this configuration."""

    active: str = Field(default=DEFAULT_PROFILE)
    config_file: Optional[Path] = None


class LedgerConfig(BaseModel):
    """Simulated balance and history limits for every user portfolio."""

    seed_balance: float = Field(default=100.0, ge=0.0)
    trade_history_limit: int = Field(default=50, ge=1)
    wallet_salt: str = Field(default="easya_")


class IndexerConfig(BaseModel):
    """Connection details for the curve subgraph."""

    subgraph_url: AnyHttpUrl = Field(
        default="https://api.goldsky.com/api/public/project_cmjjrebt3mxpt01rm9yi04vqq/subgraphs/pump-charts/v2/gn"
    )
    http_timeout: float = Field(default=10.0, ge=1.0, le=60.0)
    max_attempts: int = Field(default=3, ge=1, le=10)
    cache_ttl_seconds: int = Field(default=15, ge=0)
    page_size: int = Field(default=50, ge=1, le=1000)

    @field_validator("http_timeout", mode="before")
    @classmethod
    def _parse_timeout(cls, value) -> float:
        if isinstance(value, str):
            return float(value)
        return value


class StorageConfig(BaseModel):
    """Portfolio persistence configuration."""

    backend: StorageBackend = Field(default=StorageBackend.MEMORY)
    database_path: Path = Field(default=Path("./portfolios.sqlite3"))


class ApiConfig(BaseModel):
    """HTTP API runtime configuration."""

    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8080, ge=1, le=65535)
    allowed_origins: List[str] = Field(default_factory=lambda: ["*"])
    curve_page_size: int = Field(default=50, ge=1, le=1000)
    analyze_trade_count: int = Field(default=30, ge=1, le=1000)


class MonitoringConfig(BaseModel):
    """Logging configuration."""

    log_level: str = Field(default="INFO")

    @field_validator("log_level")
    @classmethod
    def _normalise_level(cls, value: str) -> str:
        return value.strip().upper() or "INFO"


class AppConfig(BaseSettings):
    """Aggregated application configuration."""

    profile: ProfileConfig = Field(default_factory=ProfileConfig)
    ledger: LedgerConfig = Field(default_factory=LedgerConfig)
    indexer: IndexerConfig = Field(default_factory=IndexerConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        def file_settings(_: Optional[BaseSettings] = None) -> Dict[str, Any]:
            payload, _ = _load_toml_config()
            return payload

        # Environment variables win over the static config file.
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            file_settings,
            file_secret_settings,
        )

    @model_validator(mode="after")
    def _sync_page_sizes(self) -> "AppConfig":
        if self.api.curve_page_size > self.indexer.page_size:
            self.api.curve_page_size = self.indexer.page_size
        return self


@lru_cache(maxsize=1)
def get_app_config() -> AppConfig:
    """Create a cached application configuration object."""

    return AppConfig()


__all__ = [
    "ApiConfig",
    "AppConfig",
    "IndexerConfig",
    "LedgerConfig",
    "MonitoringConfig",
    "ProfileConfig",
    "StorageBackend",
    "StorageConfig",
    "get_app_config",
]
