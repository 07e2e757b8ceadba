from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import yaml

from .errors import ConfigError


@dataclass
class DatabaseConfig:
    connection: str | None = None


@dataclass
class CryptoConfig:
    key: str | None = field(default=None, repr=False)


@dataclass
class PoolConfig:
    min_size: int = 1
    max_size: int = 1
    connect_timeout_seconds: int = 10
    close_timeout_seconds: int = 5


@dataclass
class LimitsConfig:
    query_timeout_seconds: int = 60
    max_concurrent_queries: int = 10


@dataclass
class ObservabilityConfig:
    log_level: str = "info"
    propagate_request_ids: bool = True


@dataclass
class AppConfig:
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    crypto: CryptoConfig = field(default_factory=CryptoConfig)
    pool: PoolConfig = field(default_factory=PoolConfig)
    limits: LimitsConfig = field(default_factory=LimitsConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)


_ENV_REF_RE = re.compile(r"^\$\{([A-Za-z_][A-Za-z0-9_]*)(?::-(.*))?\}$")

_LOG_LEVELS = {"debug", "info", "warning", "error", "critical"}


def _resolve_env(value: Any, env: Mapping[str, str]) -> Any:
    if isinstance(value, str):
        match = _ENV_REF_RE.match(value.strip())
        if match:
            key, default = match.group(1), match.group(2)
            if key in env:
                return env[key]
            if default is not None:
                return default or None
            raise ConfigError(f"Environment variable {key} is required but not set")
        return os.path.expandvars(value)
    if isinstance(value, list):
        return [_resolve_env(v, env) for v in value]
    if isinstance(value, dict):
        return {k: _resolve_env(v, env) for k, v in value.items()}
    return value


def _positive_int(value: Any, field_name: str) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{field_name} must be an integer") from exc
    if number <= 0:
        raise ConfigError(f"{field_name} must be greater than 0")
    return number


def _section(resolved: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    section = resolved.get(name) or {}
    if not isinstance(section, Mapping):
        raise ConfigError(f"Config section {name} must be a mapping")
    return section


def build_config(raw: Mapping[str, Any], env: Mapping[str, str] | None = None) -> AppConfig:
    env = os.environ if env is None else env
    resolved = _resolve_env(dict(raw), env)

    database_raw = _section(resolved, "database")
    crypto_raw = _section(resolved, "crypto")
    pool_raw = _section(resolved, "pool")
    limits_raw = _section(resolved, "limits")
    observability_raw = _section(resolved, "observability")

    database = DatabaseConfig(connection=database_raw.get("connection") or None)
    crypto = CryptoConfig(key=crypto_raw.get("key") or None)

    pool = PoolConfig(
        min_size=int(pool_raw.get("min_size", 1)),
        max_size=_positive_int(pool_raw.get("max_size", 1), "pool.max_size"),
        connect_timeout_seconds=_positive_int(
            pool_raw.get("connect_timeout_seconds", 10), "pool.connect_timeout_seconds"
        ),
        close_timeout_seconds=_positive_int(
            pool_raw.get("close_timeout_seconds", 5), "pool.close_timeout_seconds"
        ),
    )
    if pool.min_size < 0 or pool.min_size > pool.max_size:
        raise ConfigError("pool.min_size must be between 0 and pool.max_size")

    limits = LimitsConfig(
        query_timeout_seconds=_positive_int(
            limits_raw.get("query_timeout_seconds", 60), "limits.query_timeout_seconds"
        ),
        max_concurrent_queries=_positive_int(
            limits_raw.get("max_concurrent_queries", 10), "limits.max_concurrent_queries"
        ),
    )

    observability = ObservabilityConfig(
        log_level=str(observability_raw.get("log_level", "info")).lower(),
        propagate_request_ids=bool(observability_raw.get("propagate_request_ids", True)),
    )
    if observability.log_level not in _LOG_LEVELS:
        raise ConfigError(f"Unsupported log level: {observability.log_level}")

    return AppConfig(
        database=database,
        crypto=crypto,
        pool=pool,
        limits=limits,
        observability=observability,
    )


def load_config(path: str | Path, env: Mapping[str, str] | None = None) -> AppConfig:
    try:
        raw = yaml.safe_load(Path(path).read_text()) or {}
    except OSError as exc:
        raise ConfigError(f"Cannot read config file {path}: {exc.strerror}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"Config file {path} is not valid YAML") from exc
    if not isinstance(raw, Mapping):
        raise ConfigError("Config file must contain a mapping")
    return build_config(raw, env)
