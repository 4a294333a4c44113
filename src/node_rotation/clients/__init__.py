"""Fleet and cluster capability interfaces plus their adapters."""

from .types import ClusterClient, FleetClient
from .memory import InMemoryCluster, InMemoryFleet

__all__ = [
    "FleetClient",
    "ClusterClient",
    "InMemoryFleet",
    "InMemoryCluster",
]
