"""Configuration management for SQL Gateway.

Handles the TOML config file, environment variables, named data sources,
and configuration precedence resolution.

Precedence order (highest to lowest):
1. CLI flags (--url, --pool-size, etc.)
2. Environment variables (SQL_GATEWAY_URL, SQL_GATEWAY_KRB_REALM, ...)
3. Named source (--source or SQL_GATEWAY_SOURCE env var)
4. Config file defaults
5. Built-in defaults

The ODBC driver binary is resolved here, once, from the running platform.
"""

from __future__ import annotations

import os
import sys
import tomllib
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ValidationInfo, field_validator

from sql_gateway.core.exceptions import ConfigurationError

DEFAULT_CONFIG_PATH = Path.home() / ".config" / "sql-gateway" / "config.toml"

# Simba Spark ODBC driver install locations.
DEFAULT_DRIVER_PATHS: dict[str, str] = {
    "linux": "/opt/simba/spark/lib/64/libsparkodbc_sb64.so",
    "darwin": "/Library/simba/spark/lib/libsparkodbc_sbu.dylib",
}

_ENV_VARS: dict[str, str] = {
    "SQL_GATEWAY_URL": "url",
    "SQL_GATEWAY_KRB_REALM": "krb_realm",
    "SQL_GATEWAY_KRB_SERVICE_NAME": "krb_service_name",
    "SQL_GATEWAY_KRB_HOST_FQDN": "krb_host_fqdn",
    "SQL_GATEWAY_POOL_SIZE": "pool_size",
    "SQL_GATEWAY_QUERY_TIMEOUT": "query_timeout",
    "SQL_GATEWAY_ACQUIRE_TIMEOUT": "acquire_timeout",
    "SQL_GATEWAY_SENTRY_DSN": "sentry_dsn",
}

_INT_FIELDS = {"pool_size"}
_FLOAT_FIELDS = {"query_timeout", "acquire_timeout"}

_GLOBAL_FIELDS = (
    "pooled",
    "pool_size",
    "query_timeout",
    "acquire_timeout",
    "sentry_dsn",
)

_SOURCE_FIELDS = (
    "url",
    "krb_realm",
    "krb_service_name",
    "krb_host_fqdn",
    "http_headers",
    "schema_name",
)

_DEFAULTS: dict[str, Any] = {
    "url": None,
    "krb_realm": None,
    "krb_service_name": None,
    "krb_host_fqdn": None,
    "http_headers": {},
    "schema_name": "default",
    "pooled": True,
    "pool_size": 5,
    "query_timeout": 60.0,
    "acquire_timeout": 30.0,
    "connect_timeout": 10,
    "application_name": "sql-gateway",
    "sentry_dsn": None,
}


def resolve_driver_path(
    driver_paths: dict[str, str], platform: str | None = None
) -> str | None:
    """Return the driver binary for a platform, or None if unknown."""
    if platform is None:
        platform = sys.platform
    # sys.platform is "linux" on modern Pythons but may carry a suffix.
    for key, path in driver_paths.items():
        if platform == key or platform.startswith(key):
            return path
    return None


class SourceProfile(BaseModel):
    """One configured data source (one gateway endpoint)."""

    url: str | None = None
    krb_realm: str | None = None
    krb_service_name: str | None = None
    krb_host_fqdn: str | None = None
    http_headers: dict[str, str] = {}
    schema_name: str | None = None


class AppConfig(BaseModel):
    default_source: str | None = None
    pooled: bool = True
    pool_size: int = 5
    query_timeout: float = 60.0
    acquire_timeout: float = 30.0
    sentry_dsn: str | None = None
    driver_paths: dict[str, str] = dict(DEFAULT_DRIVER_PATHS)
    sources: dict[str, SourceProfile] = {}

    @field_validator("pool_size")
    @classmethod
    def validate_pool_size(cls, v: int) -> int:
        if v < 1:
            msg = f"Invalid pool_size: {v}. Must be at least 1"
            raise ValueError(msg)
        return v


class ResolvedConfig(BaseModel):
    url: str | None = None
    krb_realm: str | None = None
    krb_service_name: str | None = None
    krb_host_fqdn: str | None = None
    http_headers: dict[str, str] = {}
    schema_name: str = "default"
    driver_path: str | None = None
    pooled: bool = True
    pool_size: int = 5
    query_timeout: float = 60.0
    acquire_timeout: float = 30.0
    connect_timeout: int = 10
    application_name: str = "sql-gateway"
    sentry_dsn: str | None = None
    active_source: str | None = None
    sources: dict[str, str] = {}

    @field_validator("pool_size")
    @classmethod
    def validate_pool_size(cls, v: int) -> int:
        if v < 1:
            msg = f"Invalid pool_size: {v}. Must be at least 1"
            raise ValueError(msg)
        return v

    @field_validator("query_timeout", "acquire_timeout")
    @classmethod
    def validate_timeout(cls, v: float, info: ValidationInfo) -> float:
        if v <= 0:
            msg = f"Invalid {info.field_name}: {v}. Must be greater than 0"
            raise ValueError(msg)
        return v


def load_config(config_path: Path | None = None) -> AppConfig:
    """Load configuration from TOML file.

    Returns default AppConfig if file doesn't exist.
    Raises ConfigurationError on malformed TOML or invalid config.
    """
    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH

    if not config_path.exists():
        return AppConfig()

    try:
        with open(config_path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        msg = f"Malformed TOML in {config_path}: {e}"
        raise ConfigurationError(msg) from e

    try:
        return AppConfig.model_validate(data)
    except Exception as e:
        msg = f"Invalid configuration in {config_path}: {e}"
        raise ConfigurationError(msg) from e


def _coerce_env(env_var: str, field_name: str, value: str) -> Any:
    try:
        if field_name in _INT_FIELDS:
            return int(value)
        if field_name in _FLOAT_FIELDS:
            return float(value)
    except ValueError:
        msg = f"Invalid {env_var} value: '{value}'. Must be a number"
        raise ConfigurationError(msg) from None
    return value


def resolve_config(
    config: AppConfig,
    source_name: str | None = None,
    platform: str | None = None,
    **cli_overrides: Any,
) -> ResolvedConfig:
    """Resolve configuration using precedence chain.

    CLI > env > source > config defaults > built-in defaults.
    """
    sources: dict[str, str] = {}
    resolved: dict[str, Any] = {}

    # Layer 1: Built-in defaults
    resolved.update(_DEFAULTS)
    for key in resolved:
        sources[key] = "default"

    # Layer 2: Config file global defaults
    for key in _GLOBAL_FIELDS:
        if key in config.model_fields_set:
            resolved[key] = getattr(config, key)
            sources[key] = "config"

    # Layer 3: Named source
    effective_source = source_name
    if not effective_source:
        effective_source = os.environ.get("SQL_GATEWAY_SOURCE")
    if not effective_source:
        effective_source = config.default_source

    if effective_source:
        if effective_source not in config.sources:
            available = (
                ", ".join(sorted(config.sources.keys())) if config.sources else "none"
            )
            msg = (
                f"Unknown source: '{effective_source}'. "
                f"Available sources: {available}"
            )
            raise ConfigurationError(msg)
        profile = config.sources[effective_source]
        for key in _SOURCE_FIELDS:
            if key in profile.model_fields_set and getattr(profile, key) is not None:
                resolved[key] = getattr(profile, key)
                sources[key] = f"source: {effective_source}"

    # Layer 4: Environment variables
    for env_var, field_name in _ENV_VARS.items():
        value = os.environ.get(env_var)
        if value is not None:
            resolved[field_name] = _coerce_env(env_var, field_name, value)
            sources[field_name] = f"env: {env_var}"

    # Layer 5: CLI flags (highest priority)
    cli_to_field = {
        "url": "url",
        "pool_size": "pool_size",
        "pooled": "pooled",
        "timeout": "query_timeout",
        "acquire_timeout": "acquire_timeout",
    }
    for cli_name, field_name in cli_to_field.items():
        value = cli_overrides.get(cli_name)
        if value is not None:
            resolved[field_name] = value
            sources[field_name] = f"cli: --{cli_name.replace('_', '-')}"

    resolved["driver_path"] = resolve_driver_path(config.driver_paths, platform)
    sources["driver_path"] = (
        "config" if "driver_paths" in config.model_fields_set else "default"
    )
    resolved["active_source"] = effective_source
    resolved["sources"] = sources
    try:
        return ResolvedConfig(**resolved)
    except ValueError as e:
        msg = f"Invalid configuration: {e}"
        raise ConfigurationError(msg) from e
