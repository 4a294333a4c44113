from __future__ import annotations

from typing import Protocol, runtime_checkable

from ..models import ClusterHealth, GroupSnapshot, NodeCandidate


@runtime_checkable
class FleetClient(Protocol):
    """Compute group capabilities the rotation needs.

    Implementations keep provider identifiers (ARNs, tag filters) to
    themselves; the rotation only sees group ids and instance ids.
    """

    async def describe_groups(self, tag_key: str) -> list[GroupSnapshot]:
        """All groups carrying ``tag_key``."""
        ...

    async def describe_instances(self, group_id: str) -> list[NodeCandidate]:
        """Running members of the group."""
        ...

    async def detach_from_scaling(
        self, group_id: str, instance_id: str, *, decrement: bool = False
    ) -> None:
        """Remove from group bookkeeping without terminating.

        Without ``decrement`` the group launches a replacement to keep its
        desired capacity.
        """
        ...

    async def attach_to_scaling(self, group_id: str, instance_id: str) -> None:
        """Return a detached instance to the group (desired capacity +1)."""
        ...

    async def set_desired_capacity(self, group_id: str, size: int) -> None: ...

    async def terminate_in_group(self, group_id: str, instance_id: str) -> None:
        """Terminate through the group (desired capacity -1)."""
        ...


@runtime_checkable
class ClusterClient(Protocol):
    """Data cluster capabilities the rotation needs."""

    async def get_health(self) -> ClusterHealth: ...

    async def node_count(self) -> int: ...

    async def set_rebalancing(self, enabled: bool) -> None: ...

    async def evacuate(self, node_id: str) -> None:
        """Ask the cluster to move every shard off ``node_id``. Does not wait."""
        ...

    async def clear_evacuation(self, node_id: str) -> None:
        """Drop the allocation exclusion set by ``evacuate``."""
        ...

    async def get_allocation(self, node_id: str) -> int:
        """Number of shards still allocated to ``node_id``."""
        ...

    def node_id_for(self, candidate: NodeCandidate) -> str:
        """Cluster-side identity of a fleet instance (no I/O)."""
        ...
