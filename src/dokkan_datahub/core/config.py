"""Configuration loading, validation, and access."""

from __future__ import annotations

import os
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from dokkan_datahub.core.exceptions import ConfigurationError
from dokkan_datahub.core.models import StorageBackend

_HOUR_MS = 3_600_000
_DEFAULT_USER_AGENT = "dokkan-datahub/0.1 (+https://github.com/dokkan-datahub)"


class SourceConfig(BaseModel):
    """One upstream source and its access policy."""

    model_config = ConfigDict(frozen=True)

    base_url: str
    rate_limit_ms: int = 1000
    request_timeout: int = 30
    user_agent: str = _DEFAULT_USER_AGENT
    # data type -> upstream category/page name, where it differs
    categories: dict[str, str] = {}

    @field_validator("base_url")
    @classmethod
    def url_has_scheme(cls, v: str) -> str:
        if not v.startswith(("https://", "http://")):
            raise ValueError("base_url must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("rate_limit_ms")
    @classmethod
    def rate_limit_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("rate_limit_ms must be >= 0")
        return v


class DataTypeConfig(BaseModel):
    """Cache policy and source order for one data type."""

    model_config = ConfigDict(frozen=True)

    cache_ttl_ms: int = _HOUR_MS
    sources: list[str] = []

    @field_validator("cache_ttl_ms")
    @classmethod
    def ttl_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("cache_ttl_ms must be > 0")
        return v


class StorageConfig(BaseModel):
    """Cache store configuration."""

    model_config = ConfigDict(frozen=True)

    backend: StorageBackend = StorageBackend.SQLITE
    sqlite_path: str = "./data/dokkan_datahub.db"
    cache_dir: str = "./data/cache"


class APIConfig(BaseModel):
    """FastAPI server configuration."""

    model_config = ConfigDict(frozen=True)

    host: str = "127.0.0.1"
    port: int = 3000


def _default_sources() -> dict[str, SourceConfig]:
    return {
        "fandom": SourceConfig(
            base_url="https://dbz-dokkanbattle.fandom.com",
            rate_limit_ms=1000,
        ),
        "dokkanInfo": SourceConfig(
            base_url="https://dokkaninfo.com",
            rate_limit_ms=1500,
        ),
    }


def _default_data_types() -> dict[str, DataTypeConfig]:
    fandom_first = ["fandom", "dokkanInfo"]
    info_first = ["dokkanInfo", "fandom"]
    return {
        "cards": DataTypeConfig(cache_ttl_ms=_HOUR_MS, sources=fandom_first),
        "events": DataTypeConfig(cache_ttl_ms=_HOUR_MS // 2, sources=info_first),
        "ezas": DataTypeConfig(cache_ttl_ms=_HOUR_MS, sources=fandom_first),
        "dokkanEvents": DataTypeConfig(cache_ttl_ms=_HOUR_MS, sources=info_first),
        "storyEvents": DataTypeConfig(cache_ttl_ms=_HOUR_MS, sources=fandom_first),
        "missions": DataTypeConfig(cache_ttl_ms=_HOUR_MS, sources=info_first),
        "items": DataTypeConfig(cache_ttl_ms=2 * _HOUR_MS, sources=fandom_first),
    }


class HubConfig(BaseModel):
    """Root configuration for the entire dokkan-datahub system."""

    model_config = ConfigDict(frozen=True)

    sources: dict[str, SourceConfig] = _default_sources()
    data_types: dict[str, DataTypeConfig] = _default_data_types()
    default_cache_ttl_ms: int = _HOUR_MS
    storage: StorageConfig = StorageConfig()
    api: APIConfig = APIConfig()

    @model_validator(mode="after")
    def data_type_sources_are_configured(self) -> HubConfig:
        for name, dt in self.data_types.items():
            unknown = [s for s in dt.sources if s not in self.sources]
            if unknown:
                raise ValueError(
                    f"data type {name!r} references unknown sources: {unknown}"
                )
        return self

    def source_order(self) -> list[str]:
        """Configured source ids, in declaration order."""
        return list(self.sources)


def load_config(
    config_path: str | None = None,
    env_prefix: str = "DOKKAN_DATAHUB_",
) -> HubConfig:
    """Load configuration from environment + YAML file + defaults.

    Resolution order (highest priority first):
    1. Environment variables (DOKKAN_DATAHUB_STORAGE__BACKEND, etc.)
    2. YAML file at config_path
    3. Built-in defaults

    Nested keys use double-underscore in env vars:
        DOKKAN_DATAHUB_SOURCES__FANDOM__RATE_LIMIT_MS=2000
            ->  sources.fandom.rate_limit_ms = 2000

    Source and data type names are matched case-insensitively against the
    YAML/default names, so env vars can address `dokkanInfo`.
    """
    try:
        yaml_path = _resolve_config_path(config_path)
        base: dict = {}
        if yaml_path is not None:
            base = _load_yaml(yaml_path)

        merged = _merge_env_vars(base, env_prefix)
        return HubConfig.model_validate(merged)
    except Exception as e:
        if isinstance(e, ConfigurationError):
            raise
        raise ConfigurationError(str(e), context={"source": "load_config"}) from e


def _resolve_config_path(explicit: str | None) -> Path | None:
    """Determine config file path."""
    if explicit is not None:
        p = Path(explicit)
        if not p.exists():
            raise ConfigurationError(
                f"Config file not found: {explicit}",
                context={"field": "config_path", "value": explicit},
            )
        return p

    env_path = os.environ.get("DOKKAN_DATAHUB_CONFIG")
    if env_path:
        p = Path(env_path)
        if not p.exists():
            raise ConfigurationError(
                f"Config file from DOKKAN_DATAHUB_CONFIG not found: {env_path}",
                context={"field": "DOKKAN_DATAHUB_CONFIG", "value": env_path},
            )
        return p

    default = Path("dokkan-datahub.yml")
    if default.exists():
        return default

    return None


def _load_yaml(path: Path) -> dict:
    """Load and parse YAML file."""
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigurationError(
                f"YAML config must be a mapping, got {type(data).__name__}",
                context={"field": "config_file", "value": str(path)},
            )
        return data
    except yaml.YAMLError as e:
        raise ConfigurationError(
            f"Failed to parse YAML config: {e}",
            context={"field": "config_file", "value": str(path)},
        ) from e


def _merge_env_vars(base: dict, prefix: str) -> dict:
    """Overlay environment variables onto base config dict.

    Double-underscore separates nesting levels. Section and map keys that are
    not yet present in the base are seeded from the built-in defaults so that
    a single env var can override one field of a default source.
    Values are auto-cast: "true"/"false" -> bool, numeric strings -> int.
    """
    result = _deep_copy(base)
    default_tree = HubConfig().model_dump()

    for key, value in os.environ.items():
        if not key.startswith(prefix):
            continue

        remainder = key[len(prefix) :]
        parts = [p.lower() for p in remainder.split("__")]

        # Skip the CONFIG env var itself
        if parts == ["config"]:
            continue

        cast_value = _auto_cast(value)

        target = result
        defaults: object = default_tree
        for part in parts[:-1]:
            name = _match_key(target, part)
            if name is None and isinstance(defaults, dict):
                name = _match_key(defaults, part)
                if name is not None:
                    target[name] = _deep_copy(defaults[name])
            if name is None:
                name = part
                target[name] = {}
            defaults = defaults.get(name) if isinstance(defaults, dict) else None
            target = target[name]
        target[_match_key(target, parts[-1]) or parts[-1]] = cast_value

    return result


def _match_key(mapping: dict, lowered: str) -> str | None:
    """Find the key of `mapping` equal to `lowered` ignoring case."""
    for existing in mapping:
        if str(existing).lower() == lowered:
            return existing
    return None


def _deep_copy(value):
    if isinstance(value, dict):
        return {k: _deep_copy(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_deep_copy(v) for v in value]
    return value


def _auto_cast(value: str) -> str | int | float | bool:
    """Auto-cast string values from environment variables."""
    if value.lower() == "true":
        return True
    if value.lower() == "false":
        return False
    try:
        return int(value)
    except ValueError:
        pass
    try:
        return float(value)
    except ValueError:
        pass
    return value
