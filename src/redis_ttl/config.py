"""Configuration models and helpers for the redis-ttl CLI."""

from __future__ import annotations

from datetime import timedelta
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from redis_ttl.durations import format_ttl, parse_ttl
from redis_ttl.exceptions import ConfigurationError, InvalidAddressError, InvalidRateError, InvalidTtlError
from redis_ttl.models import FailurePolicy, KeyType, TtlPolicy

DEFAULT_REDIS_PORT = 6379
# PEXPIRE takes whole milliseconds and deletes the key at 0
MIN_DESIRED_TTL = timedelta(milliseconds=1)


def parse_address(address: str, default_host: str = "localhost") -> Tuple[str, int]:
    """Split ``host:port`` (or ``:port``) into its parts."""

    text = address.strip()
    if not text:
        raise InvalidAddressError(address, "empty address")
    host, sep, port = text.rpartition(":")
    if not sep:
        return text, DEFAULT_REDIS_PORT
    if not port.isdigit():
        raise InvalidAddressError(address, f"port {port!r} is not a number")
    return (host.strip("[]") or default_host), int(port)


def _coerce_ttl(value: Any) -> Any:
    if isinstance(value, str):
        return parse_ttl(value)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return timedelta(seconds=value)
    return value


def _check_desired_ttl(policy: TtlPolicy, ttl: timedelta) -> None:
    if ttl < timedelta(0):
        raise InvalidTtlError(format_ttl(ttl), "desired ttl cannot be negative")
    if policy.requires_ttl and ttl < MIN_DESIRED_TTL:
        raise InvalidTtlError(format_ttl(ttl), f"desired ttl must be at least 1ms for mode {policy.value}")


class ScanJob(BaseModel):
    """Fully resolved description of one scan-and-apply run."""

    model_config = ConfigDict(frozen=True)

    key_pattern: str = Field(..., min_length=1, description="SCAN MATCH pattern.")
    type_filter: Optional[KeyType] = Field(default=None, description="Restrict SCAN to one data type.")
    policy: TtlPolicy
    desired_ttl: timedelta = Field(default=timedelta(0))
    requests_per_second: int
    batch_hint: int = Field(default=0, ge=0, description="SCAN COUNT hint, 0 lets the server decide.")
    failure_policy: FailurePolicy
    label: str = Field(default="", description="Shard name used for log attribution.")

    @field_validator("policy", mode="before")
    @classmethod
    def _parse_policy(cls, value: Any) -> TtlPolicy:
        return TtlPolicy.parse(value)

    @field_validator("type_filter", mode="before")
    @classmethod
    def _parse_type(cls, value: Any) -> Optional[KeyType]:
        return KeyType.parse(value)

    @field_validator("desired_ttl", mode="before")
    @classmethod
    def _parse_ttl(cls, value: Any) -> Any:
        return _coerce_ttl(value)

    @model_validator(mode="after")
    def _check_invariants(self) -> "ScanJob":
        _check_desired_ttl(self.policy, self.desired_ttl)
        if self.requests_per_second <= 0:
            raise InvalidRateError(self.requests_per_second)
        return self

    def with_label(self, label: str) -> "ScanJob":
        return self.model_copy(update={"label": label})


class RunConfig(BaseModel):
    """Root configuration for one invocation of the tool."""

    redis_addr: str = Field(default=":6379", description="Single-node address, used when no cluster is set.")
    redis_cluster_addrs: List[str] = Field(default_factory=list, description="Cluster seed addresses.")
    username: Optional[str] = Field(default=None)
    password: Optional[str] = Field(default=None, repr=False)
    db: int = Field(default=0, ge=0)
    scan_prefix: str = Field(default="not-found", description="SCAN MATCH pattern, e.g. 'session:*'.")
    mode: TtlPolicy = Field(default=TtlPolicy.NOOP)
    desired_ttl: timedelta = Field(default=timedelta(hours=1))
    rps: int = Field(default=100)
    scan_type: Optional[KeyType] = Field(default=KeyType.STRING)
    scan_count: int = Field(default=0, ge=0)
    on_error: FailurePolicy = Field(
        default=FailurePolicy.CONTINUE,
        description="Per-key failure policy. Defaults to 'continue': failed keys are logged and tallied.",
    )
    client_name: str = Field(default="redis-ttl")
    max_duration: Optional[timedelta] = Field(default=None, description="Cancel the run after this long.")

    @field_validator("redis_cluster_addrs", mode="before")
    @classmethod
    def _split_addrs(cls, value: Any) -> List[str]:
        if value is None:
            return []
        if isinstance(value, str):
            value = value.split(",")
        return [str(item).strip() for item in value if str(item).strip()]

    @field_validator("mode", mode="before")
    @classmethod
    def _parse_mode(cls, value: Any) -> TtlPolicy:
        return TtlPolicy.parse(value)

    @field_validator("scan_type", mode="before")
    @classmethod
    def _parse_type(cls, value: Any) -> Optional[KeyType]:
        return KeyType.parse(value)

    @field_validator("desired_ttl", "max_duration", mode="before")
    @classmethod
    def _parse_durations(cls, value: Any) -> Any:
        return _coerce_ttl(value)

    @model_validator(mode="after")
    def _check_invariants(self) -> "RunConfig":
        _check_desired_ttl(self.mode, self.desired_ttl)
        if self.rps <= 0:
            raise InvalidRateError(self.rps)
        if not self.redis_addr.strip() and not self.redis_cluster_addrs:
            raise ConfigurationError("both --redis-addr and --redis-cluster-addrs cannot be empty")
        return self

    @property
    def clustered(self) -> bool:
        return bool(self.redis_cluster_addrs)

    def to_scan_job(self, label: str = "") -> ScanJob:
        return ScanJob(
            key_pattern=self.scan_prefix,
            type_filter=self.scan_type,
            policy=self.mode,
            desired_ttl=self.desired_ttl,
            requests_per_second=self.rps,
            batch_hint=self.scan_count,
            failure_policy=self.on_error,
            label=label,
        )


def _read_yaml(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as handle:
        return yaml.safe_load(handle) or {}


@lru_cache(maxsize=32)
def load_config_data(path: Optional[Path]) -> Dict[str, Any]:
    """Read the raw settings mapping from a YAML file (``redis_ttl:`` section or top level)."""

    if path is None:
        return {}
    data = _read_yaml(path.expanduser().resolve())
    section = data.get("redis_ttl", data)
    if not isinstance(section, dict):
        raise ConfigurationError(f"expected a mapping in {path}")
    return dict(section)


def load_config(path: Optional[Path], overrides: Optional[Dict[str, Any]] = None) -> RunConfig:
    """Build a RunConfig from an optional YAML file and CLI overrides (``None`` values are ignored)."""

    data = dict(load_config_data(path))
    data.update({key: value for key, value in (overrides or {}).items() if value is not None})
    return RunConfig.model_validate(data)
