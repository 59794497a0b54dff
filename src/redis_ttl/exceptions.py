"""Exception hierarchy for the TTL maintenance tool."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .scanning.tally import OutcomeTally


class RedisTtlError(Exception):
    """Base exception for all redis-ttl errors."""

    def __init__(self, message: str = "") -> None:
        self.message = message
        # Partial tally attached by the engine when a run aborts
        self.tally: OutcomeTally | None = None
        super().__init__(message)


# ── Configuration Errors ──────────────────────────────────────────

class ConfigurationError(RedisTtlError):
    """Raised when a job or run configuration is invalid."""


class InvalidModeError(ConfigurationError):
    """Raised when a TTL policy name is not supported."""

    def __init__(self, mode: str) -> None:
        self.mode = mode
        super().__init__(f"mode {mode!r} is not supported: invalid mode")


class InvalidTtlError(ConfigurationError):
    """Raised when a desired TTL cannot be parsed or is not allowed."""

    def __init__(self, value: Any, reason: str = "") -> None:
        self.value = value
        msg = f"invalid ttl {value!r}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class InvalidRateError(ConfigurationError):
    """Raised when the request rate is not positive."""

    def __init__(self, rps: Any) -> None:
        self.rps = rps
        super().__init__(f"rps must be greater than 0, got {rps}")


class InvalidAddressError(ConfigurationError):
    """Raised when a ``host:port`` address cannot be parsed."""

    def __init__(self, address: str, reason: str = "") -> None:
        self.address = address
        msg = f"invalid address {address!r}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


# ── Control Plane Errors ──────────────────────────────────────────

class ControlPlaneError(RedisTtlError):
    """Raised when pacing or cancellation stops a run."""


class RateLimitError(ControlPlaneError):
    """Raised when the rate governor fails to hand out a token."""

    def __init__(self, reason: str = "") -> None:
        msg = "rate governor failed"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class OperationCancelledError(ControlPlaneError):
    """Raised when the caller's cancellation signal fires."""

    def __init__(self, message: str = "operation cancelled") -> None:
        super().__init__(message)


# ── Store Errors ──────────────────────────────────────────────────

class ScanError(RedisTtlError):
    """Raised when the SCAN iteration fails. The cursor can no longer be trusted."""

    def __init__(self, label: str, reason: str = "") -> None:
        self.label = label
        msg = f"[{label}] iter error"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class KeyMutationError(RedisTtlError):
    """Raised when the TTL mutation for a single key fails."""

    def __init__(self, key: str, reason: str = "", label: str = "") -> None:
        self.key = key
        self.label = label
        prefix = f"[{label}] " if label else ""
        msg = f"{prefix}failed to update ttl of {key!r}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class StoreConnectionError(RedisTtlError):
    """Raised when the connectivity check against a node fails."""

    def __init__(self, address: str, reason: str = "") -> None:
        self.address = address
        msg = f"cannot reach {address}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


# ── Cluster Errors ────────────────────────────────────────────────

class TopologyDiscoveryError(RedisTtlError):
    """Raised when no primary node could be discovered from the seeds."""

    def __init__(self, seeds: list[str], reason: str = "") -> None:
        self.seeds = seeds
        msg = f"cluster topology discovery failed for seeds {', '.join(seeds) or '<none>'}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class FanOutError(RedisTtlError):
    """Raised when at least one shard run of a cluster fan-out failed."""

    def __init__(self, results: list[Any]) -> None:
        self.results = results
        self.failures = [r for r in results if not r.is_success]
        labels = ", ".join(r.label for r in self.failures)
        super().__init__(f"{len(self.failures)} of {len(results)} shard runs failed: {labels}")
