"""Cluster topology discovery from ``CLUSTER NODES`` reports."""

from __future__ import annotations

from typing import TYPE_CHECKING, List, Sequence

from loguru import logger
from pydantic import BaseModel
from redis.exceptions import RedisError

from redis_ttl.config import parse_address
from redis_ttl.exceptions import TopologyDiscoveryError

if TYPE_CHECKING:
    from redis_ttl.connections import ConnectionFactory

_PRIMARY_FLAG = "master"


class PrimaryNode(BaseModel):
    """A primary (non-replica) node owning one shard of the keyspace."""

    address: str

    @property
    def host(self) -> str:
        return parse_address(self.address)[0]

    @property
    def port(self) -> int:
        return parse_address(self.address)[1]


def primary_nodes_from_cluster_nodes(report: str) -> List[str]:
    """Extract primary addresses from a ``CLUSTER NODES`` report.

    Each line reads ``<id> <ip:port@cport[,hostname]> <flags> <master> ...``.
    Lines whose flags include ``master`` (``myself,master`` too) yield
    their ``ip:port``, in report order. Short lines are ignored.
    """
    primaries: List[str] = []
    for line in report.splitlines():
        parts = line.split()
        if len(parts) < 3:
            continue
        if _PRIMARY_FLAG not in parts[2].split(","):
            continue
        address = parts[1].split("@", 1)[0].split(",", 1)[0]
        primaries.append(address)
    return primaries


class ClusterTopologyResolver:
    """Discover the primaries of a cluster through its seed nodes.

    Parameters:
        seeds: ``host:port`` addresses tried in order.
        connections: Builds the plain client used to query each seed.
    """

    def __init__(self, seeds: Sequence[str], connections: "ConnectionFactory") -> None:
        self._seeds = list(seeds)
        self._connections = connections

    def discover(self) -> List[PrimaryNode]:
        """Return the primaries reported by the first reachable seed.

        Raises:
            TopologyDiscoveryError: If no seed answered, or the report
                listed no primary.
        """
        last_error = "no seed addresses configured"
        for seed in self._seeds:
            client = self._connections.node_client(seed)
            try:
                client.ping()
                report = client.execute_command("CLUSTER", "NODES")
            except RedisError as exc:
                last_error = f"{seed}: {exc}"
                logger.warning("cluster seed {} unavailable: {}", seed, exc)
                continue
            finally:
                client.close()

            if isinstance(report, (bytes, bytearray)):
                report = report.decode("utf-8", errors="backslashreplace")
            primaries = [PrimaryNode(address=address) for address in primary_nodes_from_cluster_nodes(report)]
            if not primaries:
                raise TopologyDiscoveryError(self._seeds, f"{seed} reported no primary nodes")
            logger.info("discovered {} primaries via {}: {}", len(primaries), seed, ", ".join(p.address for p in primaries))
            return primaries

        raise TopologyDiscoveryError(self._seeds, last_error)
