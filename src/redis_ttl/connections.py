"""Redis client construction."""

from __future__ import annotations

from typing import Any, Sequence

from injector import inject, singleton
from redis import Redis
from redis.cluster import ClusterNode, RedisCluster

from redis_ttl.config import RunConfig, parse_address


@singleton
class ConnectionFactory:
    """Builds the redis-py clients used by a run.

    Responses are not decoded: Redis keys are binary safe, so they travel
    as ``bytes`` from SCAN to the mutation commands.
    """

    @inject
    def __init__(self, config: RunConfig):
        self.__config = config

    def single_client(self, address: str) -> Any:
        """Client for a standalone server; used for both scanning and mutations."""
        return self.__plain_client(address, self.__config.client_name, db=self.__config.db)

    def node_client(self, address: str) -> Any:
        """Client for one cluster node; used to scan a primary or query a seed."""
        return self.__plain_client(address, f"{self.__config.client_name}-primary", db=0)

    def cluster_client(self, seeds: Sequence[str]) -> Any:
        """Cluster-aware client routing every key to the primary owning its slot."""
        startup_nodes = [ClusterNode(*parse_address(seed)) for seed in seeds]
        return RedisCluster(
            startup_nodes=startup_nodes,
            username=self.__config.username,
            password=self.__config.password,
            client_name=f"{self.__config.client_name}-cluster",
            decode_responses=False,
        )

    def __plain_client(self, address: str, client_name: str, db: int) -> Any:
        host, port = parse_address(address)
        return Redis(
            host=host,
            port=port,
            db=db,
            username=self.__config.username,
            password=self.__config.password,
            client_name=client_name,
            decode_responses=False,
        )
