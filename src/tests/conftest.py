"""Shared fixtures: in-memory stand-ins for redis-py clients."""

from __future__ import annotations

import fnmatch
from collections import Counter
from datetime import timedelta
from typing import Any, Dict, List, Optional

import pytest

CLUSTER_NODES_REPORT = """\
07c37dfeb235213a872192d90877d0cd55635b91 127.0.0.1:30004@31004,hostname4 slave e7d1eecce10fd6bb5eb35b9f99a514335d9ba9ca 0 1426238317239 4 connected
67ed2db8d677e59ec4a4cefb06858cf2a1a89fa1 127.0.0.1:30002@31002,hostname2 master - 0 1426238316232 2 connected 5461-10922
292f8b365bb7edb5e285caf0b7e6ddc7265d2f4f 127.0.0.1:30003@31003,hostname3 master - 0 1426238318243 3 connected 10923-16383
6ec23923021cf3ffec47632106199cb7f496ce01 127.0.0.1:30005@31005,hostname5 slave 67ed2db8d677e59ec4a4cefb06858cf2a1a89fa1 0 1426238316232 5 connected
824fe116063bc5fcf9f4ffd895bc17aee7731ac3 127.0.0.1:30006@31006,hostname6 slave 292f8b365bb7edb5e285caf0b7e6ddc7265d2f4f 0 1426238317741 6 connected
e7d1eecce10fd6bb5eb35b9f99a514335d9ba9ca 127.0.0.1:30001@31001,hostname1 myself,master - 0 0 1 connected 0-5460
"""


class FakeRedis:
    """Just enough of a redis-py client for SCAN and the expiration commands.

    TTLs are frozen in time: a key keeps the remaining TTL it was given.

    Parameters:
        keys: ``{key: ttl}`` where ttl is ``None`` (persistent), a
            timedelta, or milliseconds.
        page_size: Keys examined per SCAN call when no COUNT is sent.
        failures: ``{command: exception}`` raised by that command.
        fail_after: ``{command: n}`` lets the first *n* calls succeed.
        cluster_report: Reply to ``CLUSTER NODES``.
    """

    def __init__(
        self,
        keys: Optional[Dict[str, Any]] = None,
        page_size: int = 10,
        failures: Optional[Dict[str, Exception]] = None,
        fail_after: Optional[Dict[str, int]] = None,
        cluster_report: str = CLUSTER_NODES_REPORT,
    ) -> None:
        self.data: Dict[str, Dict[str, Any]] = {}
        for key, ttl in (keys or {}).items():
            self.set(key, ttl)
        self.page_size = page_size
        self.failures = failures or {}
        self.fail_after = fail_after or {}
        self.cluster_report = cluster_report
        self.calls: Counter = Counter()
        self.commands: List[tuple] = []
        self.closed = False

    # ── test helpers ──────────────────────────────────────────────

    def set(self, key: str, ttl: Any = None, key_type: str = "string") -> None:
        if isinstance(ttl, timedelta):
            ttl = int(ttl.total_seconds() * 1000)
        self.data[key] = {"type": key_type, "ttl": ttl}

    def ttl(self, key: str) -> Optional[timedelta]:
        ttl_ms = self.data[key]["ttl"]
        return None if ttl_ms is None else timedelta(milliseconds=ttl_ms)

    def mutations(self) -> List[tuple]:
        return [cmd for cmd in self.commands if cmd[0] in ("pexpire", "persist")]

    def _record(self, name: str, *args: Any) -> None:
        self.calls[name] += 1
        self.commands.append((name, *args))
        error = self.failures.get(name)
        if error is not None and self.calls[name] > self.fail_after.get(name, 0):
            raise error

    # ── redis-py surface ──────────────────────────────────────────

    def ping(self) -> bool:
        self._record("ping")
        return True

    def close(self) -> None:
        self.closed = True

    def execute_command(self, *args: Any) -> Any:
        self._record("execute_command", *args)
        if [str(a).upper() for a in args] == ["CLUSTER", "NODES"]:
            return self.cluster_report
        raise NotImplementedError(args)

    def scan(self, cursor: int = 0, match: Optional[str] = None, count: Optional[int] = None, _type: Optional[str] = None):
        self._record("scan", cursor, match, count, _type)
        ordered = sorted(self.data)
        step = count or self.page_size
        window = ordered[cursor:cursor + step]
        next_cursor = cursor + step if cursor + step < len(ordered) else 0
        keys = [
            key
            for key in window
            if (match is None or _matches(key, match))
            and (_type is None or self.data[key]["type"] == _type)
        ]
        return next_cursor, keys

    def pttl(self, key: str) -> int:
        self._record("pttl", key)
        if key not in self.data:
            return -2
        ttl_ms = self.data[key]["ttl"]
        return -1 if ttl_ms is None else ttl_ms

    def pexpire(self, key: str, time: int, nx: bool = False, xx: bool = False, gt: bool = False, lt: bool = False) -> bool:
        self._record("pexpire", key, time, nx, xx, gt, lt)
        if key not in self.data:
            return False
        current = self.data[key]["ttl"]
        if time <= 0 and not (nx or xx or gt or lt):
            # Redis deletes the key instead of expiring it
            del self.data[key]
            return True
        if nx and current is not None:
            return False
        if xx and current is None:
            return False
        # A persistent key counts as an infinite TTL for GT/LT
        if gt and (current is None or time <= current):
            return False
        if lt and current is not None and time >= current:
            return False
        self.data[key]["ttl"] = int(time)
        return True

    def persist(self, key: str) -> bool:
        self._record("persist", key)
        if key not in self.data or self.data[key]["ttl"] is None:
            return False
        self.data[key]["ttl"] = None
        return True


def _matches(key: Any, pattern: str) -> bool:
    if isinstance(key, bytes):
        return fnmatch.fnmatchcase(key, pattern.encode("utf-8"))
    return fnmatch.fnmatchcase(key, pattern)


class FakeCluster:
    """Cluster-aware client: routes each key to the node holding it."""

    def __init__(self, nodes: Dict[str, FakeRedis]) -> None:
        self.nodes = nodes
        self.closed = False

    def _node_for(self, key: str) -> FakeRedis:
        for node in self.nodes.values():
            if key in node.data:
                return node
        return next(iter(self.nodes.values()))

    def pttl(self, key: str) -> int:
        return self._node_for(key).pttl(key)

    def pexpire(self, key: str, time: int, **flags: bool) -> bool:
        return self._node_for(key).pexpire(key, time, **flags)

    def persist(self, key: str) -> bool:
        return self._node_for(key).persist(key)

    def close(self) -> None:
        self.closed = True


class FakeConnectionFactory:
    """Drop-in for ConnectionFactory serving prebuilt fakes by address."""

    def __init__(self, nodes: Dict[str, FakeRedis]) -> None:
        self.nodes = nodes
        self.cluster: Optional[FakeCluster] = None
        self.cluster_error: Optional[Exception] = None

    def single_client(self, address: str) -> FakeRedis:
        return self.nodes[address]

    def node_client(self, address: str) -> FakeRedis:
        return self.nodes[address]

    def cluster_client(self, seeds) -> FakeCluster:
        if self.cluster_error is not None:
            raise self.cluster_error
        self.cluster = FakeCluster(dict(self.nodes))
        return self.cluster


@pytest.fixture
def make_redis():
    return FakeRedis


@pytest.fixture
def make_cluster():
    return FakeCluster


@pytest.fixture
def make_connections():
    return FakeConnectionFactory


@pytest.fixture
def cluster_report():
    return CLUSTER_NODES_REPORT
