"""Prometheus counters describing scan progress."""

from __future__ import annotations

from prometheus_client import Counter, start_http_server

KEYS_VISITED = Counter(
    "redis_ttl_keys_visited_total",
    "Keys yielded by SCAN and handed to the policy dispatcher",
    ["shard"],
)
KEYS_MUTATED = Counter(
    "redis_ttl_keys_mutated_total",
    "Keys whose TTL was changed",
    ["shard"],
)
KEYS_SKIPPED = Counter(
    "redis_ttl_keys_skipped_total",
    "Keys left untouched because the policy declined them",
    ["shard"],
)
KEY_ERRORS = Counter(
    "redis_ttl_key_errors_total",
    "Per-key mutation failures",
    ["shard"],
)


def start_metrics_server(port: int, addr: str = "0.0.0.0") -> None:
    """Expose the default registry on ``http://addr:port/metrics``."""

    start_http_server(port, addr=addr)
