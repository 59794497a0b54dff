"""Enumerations shared by the configuration, the dispatcher and the engine."""

from __future__ import annotations

import enum
from typing import Optional

from redis_ttl.exceptions import ConfigurationError, InvalidModeError


class TtlPolicy(str, enum.Enum):
    """Conditional rule deciding whether and how a key's TTL is mutated."""

    SET = "set"
    SET_IF_GREATER = "setIfGreater"
    SET_IF_LESS = "setIfLess"
    SET_IF_ABSENT = "setIfAbsent"
    SET_IF_PRESENT = "setIfPresent"
    CLEAR = "clear"
    NOOP = "noop"

    @classmethod
    def parse(cls, value: "str | TtlPolicy") -> "TtlPolicy":
        """Resolve a policy from its name or from a short mode alias (``exp``, ``gt``...)."""

        if isinstance(value, TtlPolicy):
            return value
        name = str(value).strip()
        for policy in cls:
            if policy.value.lower() == name.lower():
                return policy
        alias = _MODE_ALIASES.get(name.lower())
        if alias is None:
            raise InvalidModeError(name)
        return alias

    @property
    def requires_ttl(self) -> bool:
        return self is not TtlPolicy.CLEAR


_MODE_ALIASES: dict[str, TtlPolicy] = {
    "exp": TtlPolicy.SET,
    "gt": TtlPolicy.SET_IF_GREATER,
    "lt": TtlPolicy.SET_IF_LESS,
    "nx": TtlPolicy.SET_IF_ABSENT,
    "xx": TtlPolicy.SET_IF_PRESENT,
    "persist": TtlPolicy.CLEAR,
}


class KeyType(str, enum.Enum):
    """Data type classes accepted by ``SCAN ... TYPE``."""

    STRING = "string"
    LIST = "list"
    SET = "set"
    ZSET = "zset"
    HASH = "hash"
    STREAM = "stream"

    @classmethod
    def parse(cls, value: "str | KeyType | None") -> Optional["KeyType"]:
        """``None``, ``""`` and ``"any"`` disable type filtering."""

        if value is None or isinstance(value, KeyType):
            return value
        name = str(value).strip().lower()
        if name in ("", "any", "*"):
            return None
        try:
            return cls(name)
        except ValueError:
            choices = ", ".join(t.value for t in cls)
            raise ConfigurationError(f"unsupported scan type {value!r}, expected one of: any, {choices}") from None


class FailurePolicy(str, enum.Enum):
    """What the engine does when a single key's mutation fails."""

    ABORT = "abort"
    CONTINUE = "continue"
