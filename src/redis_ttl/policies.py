"""TTL policy dispatch: one conditional expiration command per key."""

from __future__ import annotations

import math
from datetime import timedelta
from typing import Any, Callable, Union

from redis.exceptions import RedisError

from redis_ttl.exceptions import KeyMutationError
from redis_ttl.keys import display_key
from redis_ttl.models import TtlPolicy

# PTTL replies for a missing key and for a key without expiration
_PTTL_MISSING = -2
_PTTL_PERSISTENT = -1
_ONE_MILLISECOND = timedelta(milliseconds=1)


class PolicyDispatcher:
    """Apply a :class:`TtlPolicy` to single keys.

    Parameters:
        client: A redis-py client (``Redis`` or ``RedisCluster``) used
            for the mutation commands.
        policy: The policy to apply.
        desired_ttl: Target TTL; ignored by ``clear`` and ``noop``.
        label: Shard label attached to raised errors.
    """

    def __init__(self, client: Any, policy: TtlPolicy, desired_ttl: timedelta, label: str = "") -> None:
        self._client = client
        self._policy = policy
        # PEXPIRE with 0 deletes the key, so partial milliseconds round up
        self._ttl_ms = max(1, math.ceil(desired_ttl / _ONE_MILLISECOND))
        self._label = label
        self._handler: Callable[[str], Any] = getattr(self, _HANDLERS[policy])

    @property
    def policy(self) -> TtlPolicy:
        return self._policy

    def apply(self, key: Union[bytes, str]) -> bool:
        """Run the policy against *key* and report whether the TTL changed.

        A key deleted since it was scanned is reported as not applied.

        Raises:
            KeyMutationError: If the store rejected the command.
        """
        try:
            return bool(self._handler(key))
        except RedisError as exc:
            raise KeyMutationError(display_key(key), str(exc), label=self._label) from exc

    def _set(self, key: str) -> Any:
        return self._client.pexpire(key, self._ttl_ms)

    def _set_if_greater(self, key: str) -> Any:
        # Native GT treats a persistent key as infinite, here it gets the TTL
        current = self._client.pttl(key)
        if current == _PTTL_MISSING:
            return False
        if current == _PTTL_PERSISTENT:
            return self._client.pexpire(key, self._ttl_ms, nx=True)
        return self._client.pexpire(key, self._ttl_ms, gt=True)

    def _set_if_less(self, key: str) -> Any:
        return self._client.pexpire(key, self._ttl_ms, lt=True)

    def _set_if_absent(self, key: str) -> Any:
        return self._client.pexpire(key, self._ttl_ms, nx=True)

    def _set_if_present(self, key: str) -> Any:
        return self._client.pexpire(key, self._ttl_ms, xx=True)

    def _clear(self, key: str) -> Any:
        return self._client.persist(key)

    def _noop(self, key: str) -> Any:
        return False


_HANDLERS: dict[TtlPolicy, str] = {
    TtlPolicy.SET: "_set",
    TtlPolicy.SET_IF_GREATER: "_set_if_greater",
    TtlPolicy.SET_IF_LESS: "_set_if_less",
    TtlPolicy.SET_IF_ABSENT: "_set_if_absent",
    TtlPolicy.SET_IF_PRESENT: "_set_if_present",
    TtlPolicy.CLEAR: "_clear",
    TtlPolicy.NOOP: "_noop",
}

_unhandled = set(TtlPolicy) - set(_HANDLERS)
if _unhandled:
    raise RuntimeError(f"no dispatcher handler for policies: {sorted(p.value for p in _unhandled)}")
