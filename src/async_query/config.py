# src/async_query/config.py

"""
Startup configuration for pagination and the PostgreSQL pool.

Each config is resolved the same way: explicit values, then defaults for
anything unset, then environment overrides, then validation. A failed
validation raises pydantic's ValidationError (a ValueError) at startup.
"""

import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional
from urllib.parse import quote

from pydantic import BaseModel, ConfigDict, model_validator

log = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


def _env_str(name: Optional[str]) -> Optional[str]:
    if not name:
        return None
    return os.environ.get(name) or None


def _env_int(name: Optional[str]) -> Optional[int]:
    raw = _env_str(name)
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        log.warning(f"Ignoring non-integer value {raw!r} for ${name}")
        return None


def _non_zero(values: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in values.items() if v not in (None, "", 0)}


# --- Pagination ---
@dataclass(frozen=True)
class PaginationEnv:
    """Names of the environment variables overriding PaginationConfig."""

    default_page_size: Optional[str] = None
    max_page_size: Optional[str] = None


class PaginationConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    default_page_size: int = DEFAULT_PAGE_SIZE
    max_page_size: int = MAX_PAGE_SIZE

    @model_validator(mode="after")
    def _check_sizes(self) -> "PaginationConfig":
        if self.default_page_size < 1:
            raise ValueError("default_page_size must be positive")
        if self.max_page_size < 1:
            raise ValueError("max_page_size must be positive")
        if self.default_page_size > self.max_page_size:
            raise ValueError("default_page_size cannot exceed max_page_size")
        return self

    @classmethod
    def finalize(
        cls, env: Optional[PaginationEnv] = None, **values: Any
    ) -> "PaginationConfig":
        """Builds a config from `values`, defaults and environment overrides."""
        resolved = _non_zero(values)
        if (resolved.get("default_page_size") or 0) < 0:
            resolved.pop("default_page_size")
        if (resolved.get("max_page_size") or 0) < 0:
            resolved.pop("max_page_size")
        if env is not None:
            resolved.update(
                _non_zero(
                    {
                        "default_page_size": _env_int(env.default_page_size),
                        "max_page_size": _env_int(env.max_page_size),
                    }
                )
            )
        return cls(**resolved)

    def merge(self, overlay: Mapping[str, Any]) -> "PaginationConfig":
        """Returns a validated copy with the overlay's non-zero values applied."""
        return type(self)(**{**self.model_dump(), **_non_zero(dict(overlay))})


# --- Database ---
@dataclass(frozen=True)
class DatabaseEnv:
    """Names of the environment variables overriding DatabaseConfig."""

    host: Optional[str] = None
    port: Optional[str] = None
    name: Optional[str] = None
    user: Optional[str] = None
    password: Optional[str] = None
    ssl_mode: Optional[str] = None
    max_open_conns: Optional[str] = None
    min_idle_conns: Optional[str] = None
    conn_max_idle_time: Optional[str] = None
    conn_timeout: Optional[str] = None


_DATABASE_INT_FIELDS = ("port", "max_open_conns", "min_idle_conns")
_DATABASE_FLOAT_FIELDS = ("conn_max_idle_time", "conn_timeout")


class DatabaseConfig(BaseModel):
    """
    PostgreSQL connection settings.

    Pool sizing maps onto asyncpg.create_pool: `max_open_conns` is the pool's
    max_size and `min_idle_conns` its min_size, the connections kept open
    while idle. `conn_max_idle_time` closes a connection after that many
    seconds unused (max_inactive_connection_lifetime); asyncpg has no
    limit on total connection age. `conn_timeout` is in seconds.
    """

    model_config = ConfigDict(frozen=True)

    host: str = "localhost"
    port: int = 5432
    name: str
    user: str
    password: str = ""
    ssl_mode: str = "disable"
    max_open_conns: int = 25
    min_idle_conns: int = 5
    conn_max_idle_time: float = 900.0
    conn_timeout: float = 5.0

    @model_validator(mode="before")
    @classmethod
    def _clamp_idle(cls, data: Any) -> Any:
        """Caps min_idle_conns at max_open_conns instead of rejecting the config."""
        if not isinstance(data, dict):
            return data
        max_open = data.get("max_open_conns", cls.model_fields["max_open_conns"].default)
        min_idle = data.get("min_idle_conns", cls.model_fields["min_idle_conns"].default)
        if isinstance(max_open, int) and isinstance(min_idle, int) and min_idle > max_open >= 1:
            log.warning(f"min_idle_conns={min_idle} exceeds max_open_conns; using {max_open}")
            data = {**data, "min_idle_conns": max_open}
        return data

    @model_validator(mode="after")
    def _check_values(self) -> "DatabaseConfig":
        if not self.name:
            raise ValueError("name required")
        if not self.user:
            raise ValueError("user required")
        if self.max_open_conns < 1:
            raise ValueError("max_open_conns must be positive")
        if self.min_idle_conns < 0:
            raise ValueError("min_idle_conns cannot be negative")
        if self.conn_max_idle_time < 0 or self.conn_timeout <= 0:
            raise ValueError("conn_max_idle_time and conn_timeout must be positive")
        return self

    @classmethod
    def finalize(cls, env: Optional[DatabaseEnv] = None, **values: Any) -> "DatabaseConfig":
        resolved = _non_zero(values)
        if env is not None:
            overrides: Dict[str, Any] = {}
            for field_name in DatabaseEnv.__dataclass_fields__:
                var = getattr(env, field_name)
                if field_name in _DATABASE_INT_FIELDS:
                    overrides[field_name] = _env_int(var)
                elif field_name in _DATABASE_FLOAT_FIELDS:
                    raw = _env_str(var)
                    try:
                        overrides[field_name] = float(raw) if raw else None
                    except ValueError:
                        log.warning(f"Ignoring non-numeric value {raw!r} for ${var}")
                else:
                    overrides[field_name] = _env_str(var)
            resolved.update(_non_zero(overrides))
        return cls(**resolved)

    def merge(self, overlay: Mapping[str, Any]) -> "DatabaseConfig":
        return type(self)(**{**self.model_dump(), **_non_zero(dict(overlay))})

    def dsn(self) -> str:
        auth = quote(self.user, safe="")
        if self.password:
            auth += ":" + quote(self.password, safe="")
        return (
            f"postgresql://{auth}@{self.host}:{self.port}/{quote(self.name, safe='')}"
            f"?sslmode={self.ssl_mode}"
        )
