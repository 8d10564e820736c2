"""Configuration objects for the driver proximity index."""

from __future__ import annotations

from dataclasses import dataclass, fields
import os
from pathlib import Path
from typing import Any, Mapping

import yaml

from .models import Strategy

DEFAULT_SYNTHETIC_PREFIX = "ghost:"
DEFAULT_H3_RESOLUTION = 7
DEFAULT_CANDIDATE_CEILING = 1000

_STORE_BACKENDS = {"memory", "redis"}

# Environment variable -> config field.
_ENV_FIELDS = {
    "PROXIMITY_STRATEGY": "strategy",
    "PROXIMITY_CANDIDATE_CEILING": "candidate_ceiling",
    "PROXIMITY_H3_RESOLUTION": "h3_resolution",
    "PROXIMITY_SYNTHETIC_PREFIX": "synthetic_prefix",
    "PROXIMITY_STORE_BACKEND": "store_backend",
    "REDIS_URL": "redis_url",
    "PROXIMITY_REDIS_KEY": "redis_key",
    "PROXIMITY_REDIS_SOCKET_TIMEOUT_S": "redis_socket_timeout_s",
    "PROXIMITY_SCAN_CHUNK_SIZE": "scan_chunk_size",
    "PROXIMITY_REJECT_SYNTHETIC_IDS": "reject_synthetic_ids",
}


class ConfigError(ValueError):
    """Raised when proximity configuration is invalid."""


@dataclass(frozen=True)
class ProximityConfig:
    """Runtime configuration for one proximity service instance."""

    # Default strategy when a caller does not pass one explicitly.
    strategy: Strategy = Strategy.FLAT_SCAN

    # Oversized internal limit applied before overlay filtering.
    candidate_ceiling: int = DEFAULT_CANDIDATE_CEILING

    # H3 resolution of the cell index (7 = ~1.4 km average edge).
    h3_resolution: int = DEFAULT_H3_RESOLUTION

    # Ids starting with this prefix are synthetic (secondary) entities.
    synthetic_prefix: str = DEFAULT_SYNTHETIC_PREFIX

    # "memory" keeps points in-process, "redis" uses a Redis geo set.
    store_backend: str = "memory"
    redis_url: str = "redis://localhost:6379"
    redis_key: str = "drivers"
    redis_socket_timeout_s: float | None = 2.0

    # Points per vectorized chunk in in-memory flat scans.
    scan_chunk_size: int = 65536

    # If True, real-caller location reports may not use the synthetic prefix.
    reject_synthetic_ids: bool = False

    def __post_init__(self) -> None:
        """Validate config values once at construction time."""
        try:
            object.__setattr__(self, "strategy", Strategy.parse(self.strategy))
        except ValueError as exc:
            raise ConfigError(str(exc)) from exc

        if self.candidate_ceiling <= 0:
            raise ConfigError("candidate_ceiling must be > 0")

        if not 0 <= self.h3_resolution <= 15:
            raise ConfigError("h3_resolution must be between 0 and 15")

        if not self.synthetic_prefix:
            raise ConfigError("synthetic_prefix must be a non-empty string")

        if self.store_backend not in _STORE_BACKENDS:
            raise ConfigError(f"store_backend must be one of {sorted(_STORE_BACKENDS)}")

        if not self.redis_key:
            raise ConfigError("redis_key must be a non-empty string")

        if self.redis_socket_timeout_s is not None and self.redis_socket_timeout_s <= 0:
            raise ConfigError("redis_socket_timeout_s must be > 0 when provided")

        if self.scan_chunk_size <= 0:
            raise ConfigError("scan_chunk_size must be > 0")

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "ProximityConfig":
        """Build a config from a flat mapping of field names to raw values."""
        known = {f.name: f for f in fields(cls)}
        unknown = sorted(set(raw) - set(known))
        if unknown:
            raise ConfigError(f"unknown proximity config keys: {unknown}")

        values: dict[str, Any] = {}
        for name, raw_value in raw.items():
            values[name] = _coerce(name, raw_value)
        return cls(**values)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "ProximityConfig":
        """Build a config from `PROXIMITY_*` environment variables and `REDIS_URL`."""
        env = os.environ if environ is None else environ
        raw = {field: env[var] for var, field in _ENV_FIELDS.items() if var in env and env[var] != ""}
        return cls.from_mapping(raw)

    def to_serializable_dict(self) -> dict[str, Any]:
        """Return config as plain Python types for YAML/JSON output."""
        return {
            "strategy": self.strategy.value,
            "candidate_ceiling": self.candidate_ceiling,
            "h3_resolution": self.h3_resolution,
            "synthetic_prefix": self.synthetic_prefix,
            "store_backend": self.store_backend,
            "redis_url": self.redis_url,
            "redis_key": self.redis_key,
            "redis_socket_timeout_s": self.redis_socket_timeout_s,
            "scan_chunk_size": self.scan_chunk_size,
            "reject_synthetic_ids": self.reject_synthetic_ids,
        }


def load_proximity_config(config_path: str | Path) -> ProximityConfig:
    """Load and validate a YAML proximity config file."""
    path = Path(config_path)
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")

    with path.open("r", encoding="utf-8") as handle:
        raw = yaml.safe_load(handle)

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigError("config root must be a mapping")

    # Accept either a flat mapping or one nested under "proximity".
    section = raw.get("proximity", raw)
    if not isinstance(section, dict):
        raise ConfigError("proximity must be a mapping")
    return ProximityConfig.from_mapping(section)


def _coerce(name: str, value: Any) -> Any:
    try:
        if name in {"candidate_ceiling", "h3_resolution", "scan_chunk_size"}:
            return int(value)
        if name == "redis_socket_timeout_s":
            if value is None or str(value).strip().lower() in {"none", "null"}:
                return None
            return float(value)
        if name == "reject_synthetic_ids":
            return _parse_bool(value)
        if name == "strategy":
            return value if isinstance(value, Strategy) else str(value)
        return str(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"invalid value for {name}: {value!r}") from exc


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in {"1", "true", "yes", "on"}:
        return True
    if text in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"not a boolean: {value!r}")
