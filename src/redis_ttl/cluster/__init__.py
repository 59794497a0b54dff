"""Cluster topology discovery and per-primary fan-out."""

from .fanout import ClusterFanOut, ShardResult, ShardStatus
from .topology import ClusterTopologyResolver, PrimaryNode, primary_nodes_from_cluster_nodes

__all__ = [
    "ClusterFanOut",
    "ClusterTopologyResolver",
    "PrimaryNode",
    "ShardResult",
    "ShardStatus",
    "primary_nodes_from_cluster_nodes",
]
