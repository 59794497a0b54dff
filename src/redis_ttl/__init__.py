"""Bulk TTL maintenance for Redis and Redis Cluster."""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("redis-ttl")
except PackageNotFoundError:  # pragma: no cover - running from a source checkout
    __version__ = "0.0.0"

__all__ = ["__version__"]
