"""Run orchestration: single-node or cluster-wide TTL maintenance."""

from __future__ import annotations

import enum
import threading
import time
from typing import Any, Iterable, List, Optional

from injector import Injector, inject, singleton
from loguru import logger
from pydantic import BaseModel, Field
from redis.exceptions import RedisClusterException, RedisError

from redis_ttl.cluster import ClusterFanOut, ClusterTopologyResolver, PrimaryNode, ShardResult
from redis_ttl.config import RunConfig
from redis_ttl.connections import ConnectionFactory
from redis_ttl.exceptions import StoreConnectionError
from redis_ttl.rate import RateGovernor, governor_for
from redis_ttl.scanning import OutcomeTally, ScanEngine


class RunMode(str, enum.Enum):
    SINGLE = "single"
    CLUSTER = "cluster"


class RunReport(BaseModel):
    """Aggregate outcome of a run over one node or every primary."""

    mode: RunMode
    results: List[ShardResult] = Field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return all(result.is_success for result in self.results)

    @property
    def degraded(self) -> bool:
        return any(result.tally.degraded for result in self.results)

    @property
    def total(self) -> OutcomeTally:
        total = OutcomeTally()
        for result in self.results:
            total = total.merge(result.tally)
        return total


@singleton
class GovernorFactory:
    """Hands out one rate governor per shard run."""

    @inject
    def __init__(self, config: RunConfig):
        self.__rps = config.rps

    def create(self) -> RateGovernor:
        return governor_for(self.__rps)


@singleton
class TtlMaintenanceService:
    """Entry point shared by the CLI commands."""

    @inject
    def __init__(self, config: RunConfig, connections: ConnectionFactory, governors: GovernorFactory):
        self.__config = config
        self.__connections = connections
        self.__governors = governors

    def discover_primaries(self) -> List[PrimaryNode]:
        resolver = ClusterTopologyResolver(self.__config.redis_cluster_addrs, self.__connections)
        return resolver.discover()

    def run(self, cancel: Optional[threading.Event] = None) -> RunReport:
        """Run the configured job.

        Raises:
            ConfigurationError: If the job is invalid.
            TopologyDiscoveryError: If no primary could be discovered.
            StoreConnectionError: If the standalone server is unreachable.
            FanOutError: If any cluster shard failed.
            RedisTtlError: The error that aborted a single-node run.
        """
        if self.__config.clustered:
            return self.__run_cluster(cancel)
        return self.__run_single(cancel)

    def __run_single(self, cancel: Optional[threading.Event]) -> RunReport:
        address = self.__config.redis_addr
        job = self.__config.to_scan_job(label=address)
        client = self.__connections.single_client(address)
        try:
            try:
                client.ping()
            except RedisError as exc:
                raise StoreConnectionError(address, str(exc)) from exc

            engine = ScanEngine(job, scan_client=client, governor=self.__governors.create(), cancel=cancel)
            started = time.monotonic()
            tally = engine.run()
            return RunReport(
                mode=RunMode.SINGLE,
                results=[ShardResult.success(engine.label, tally, time.monotonic() - started)],
            )
        finally:
            client.close()

    def __run_cluster(self, cancel: Optional[threading.Event]) -> RunReport:
        # Validate before touching the network
        job = self.__config.to_scan_job()
        primaries = self.discover_primaries()
        logger.info("scanning {} primaries concurrently", len(primaries))
        seeds = self.__config.redis_cluster_addrs
        try:
            cluster_client = self.__connections.cluster_client(seeds)
        except (RedisClusterException, RedisError) as exc:
            raise StoreConnectionError(",".join(seeds), str(exc)) from exc
        try:
            fan_out = ClusterFanOut(
                job,
                primaries,
                mutation_client=cluster_client,
                scan_client_factory=self.__connections.node_client,
                governor_factory=self.__governors.create,
                cancel=cancel,
            )
            results = fan_out.run()
        finally:
            cluster_client.close()
        return RunReport(mode=RunMode.CLUSTER, results=results)


def build_injector(config: RunConfig, *modules: Iterable[Any]) -> Injector:
    """Create the injector for a run; extra *modules* may override bindings (tests)."""

    def configure_bindings(binder):
        binder.bind(RunConfig, to=config)

    return Injector([configure_bindings, *modules])
