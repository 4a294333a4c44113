"""
In-memory fleet and cluster used by tests and local walkthroughs.

The fakes model just enough behaviour to drive a full rotation: raising
desired capacity or detaching without a decrement launches instances that
join the linked cluster, terminating removes them, and evacuated nodes
drain after a configurable number of allocation polls. Every call is
recorded so tests can assert on mutations.
"""

from __future__ import annotations

import itertools
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional

from loguru import logger

from ..errors import ClientError, UnexpectedState
from ..models import ClusterHealth, GroupSnapshot, NodeCandidate


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class _CallLog:
    MUTATING: frozenset[str] = frozenset()

    def __init__(self) -> None:
        self.calls: list[tuple[str, tuple]] = []

    def _log(self, name: str, *args) -> None:
        self.calls.append((name, args))

    @property
    def mutations(self) -> list[tuple[str, tuple]]:
        return [c for c in self.calls if c[0] in self.MUTATING]

    def called(self, name: str) -> int:
        return sum(1 for c in self.calls if c[0] == name)


class InMemoryCluster(_CallLog):
    """Fake data cluster.

    ``health_script`` and ``node_count_script`` are consumed one value per
    read; once empty the computed state is reported.
    """

    MUTATING = frozenset({"set_rebalancing", "evacuate", "clear_evacuation"})

    def __init__(
        self,
        shards: Optional[dict[str, int]] = None,
        *,
        health: ClusterHealth = ClusterHealth.GREEN,
        drain_polls: int = 0,
        health_script: Iterable[ClusterHealth] = (),
        node_count_script: Iterable[int] = (),
    ) -> None:
        super().__init__()
        self.shards: dict[str, int] = dict(shards or {})
        self.health = health
        self.rebalancing = True
        self.excluded: set[str] = set()
        self.drain_polls = drain_polls
        self._drain_left: dict[str, int] = {}
        self.health_script: deque[ClusterHealth] = deque(health_script)
        self.node_count_script: deque[int] = deque(node_count_script)

    # --- membership, driven by InMemoryFleet

    def join(self, node_id: str) -> None:
        self.shards.setdefault(node_id, 0)

    def leave(self, node_id: str) -> None:
        self.shards.pop(node_id, None)

    # --- ClusterClient

    async def get_health(self) -> ClusterHealth:
        self._log("get_health")
        if self.health_script:
            return self.health_script.popleft()
        return self.health

    async def node_count(self) -> int:
        self._log("node_count")
        if self.node_count_script:
            return self.node_count_script.popleft()
        return len(self.shards)

    async def set_rebalancing(self, enabled: bool) -> None:
        self._log("set_rebalancing", enabled)
        self.rebalancing = enabled

    async def evacuate(self, node_id: str) -> None:
        self._log("evacuate", node_id)
        if node_id not in self.shards:
            raise ClientError(f"unknown cluster node {node_id}")
        self.excluded.add(node_id)
        self._drain_left[node_id] = self.drain_polls

    async def clear_evacuation(self, node_id: str) -> None:
        self._log("clear_evacuation", node_id)
        self.excluded.discard(node_id)
        self._drain_left.pop(node_id, None)

    async def get_allocation(self, node_id: str) -> int:
        self._log("get_allocation", node_id)
        if node_id in self.excluded:
            if self._drain_left.get(node_id, 0) > 0:
                self._drain_left[node_id] -= 1
            else:
                self._move_shards_off(node_id)
        return self.shards.get(node_id, 0)

    def node_id_for(self, candidate: NodeCandidate) -> str:
        return candidate.instance_id

    def _move_shards_off(self, node_id: str) -> None:
        moving = self.shards.get(node_id, 0)
        receivers = [n for n in self.shards if n not in self.excluded]
        if not moving or not receivers:
            return
        for i in range(moving):
            self.shards[receivers[i % len(receivers)]] += 1
        self.shards[node_id] = 0


@dataclass
class _Group:
    group_id: str
    tag_keys: set[str]
    min_size: int
    max_size: int
    desired: int
    members: dict[str, NodeCandidate] = field(default_factory=dict)


class InMemoryFleet(_CallLog):
    """Fake compute fleet.

    When ``cluster`` is given, launched instances join it and terminated
    instances leave it. With ``auto_launch=False`` raising desired
    capacity is recorded but no instance appears. Calls that would take
    desired capacity below ``min_size`` are rejected.
    """

    MUTATING = frozenset(
        {"detach_from_scaling", "attach_to_scaling", "set_desired_capacity", "terminate_in_group"}
    )

    def __init__(
        self,
        *,
        cluster: Optional[InMemoryCluster] = None,
        clock: Callable[[], datetime] = _utc_now,
        auto_launch: bool = True,
    ) -> None:
        super().__init__()
        self._groups: dict[str, _Group] = {}
        self.detached: dict[str, NodeCandidate] = {}
        self.terminated: list[str] = []
        self._cluster = cluster
        self._clock = clock
        self.auto_launch = auto_launch
        self._ids = itertools.count(1)

    def add_group(
        self,
        group_id: str,
        instances: Iterable[NodeCandidate] = (),
        *,
        tag_key: str = "RotateWithElasticsearchNodeRotation",
        min_size: int = 0,
        max_size: Optional[int] = None,
    ) -> None:
        members = {c.instance_id: c for c in instances}
        desired = len(members)
        self._groups[group_id] = _Group(
            group_id=group_id,
            tag_keys={tag_key},
            min_size=min_size,
            max_size=max_size if max_size is not None else desired + 1,
            desired=desired,
            members=members,
        )
        if self._cluster is not None:
            for iid in members:
                self._cluster.join(iid)

    def group(self, group_id: str) -> GroupSnapshot:
        return self._snapshot(self._require(group_id))

    # --- FleetClient

    async def describe_groups(self, tag_key: str) -> list[GroupSnapshot]:
        self._log("describe_groups", tag_key)
        return [
            self._snapshot(g, tag_key)
            for g in sorted(self._groups.values(), key=lambda g: g.group_id)
            if tag_key in g.tag_keys
        ]

    async def describe_instances(self, group_id: str) -> list[NodeCandidate]:
        self._log("describe_instances", group_id)
        return list(self._require(group_id).members.values())

    async def detach_from_scaling(
        self, group_id: str, instance_id: str, *, decrement: bool = False
    ) -> None:
        self._log("detach_from_scaling", group_id, instance_id)
        g = self._require(group_id)
        if instance_id not in g.members:
            raise ClientError(f"{instance_id} is not in group {group_id}")
        if decrement:
            self._check_min(g, "Detaching", instance_id)
        self.detached[instance_id] = g.members.pop(instance_id)
        if decrement:
            g.desired -= 1
        elif self.auto_launch:
            while len(g.members) < g.desired:
                self._launch(g)

    async def attach_to_scaling(self, group_id: str, instance_id: str) -> None:
        self._log("attach_to_scaling", group_id, instance_id)
        g = self._require(group_id)
        node = self.detached.pop(instance_id, None)
        if node is None:
            raise ClientError(f"{instance_id} is not detached")
        if g.desired + 1 > g.max_size:
            self.detached[instance_id] = node
            raise ClientError(f"attaching {instance_id} would exceed max size {g.max_size}")
        g.members[instance_id] = node
        g.desired += 1

    async def set_desired_capacity(self, group_id: str, size: int) -> None:
        self._log("set_desired_capacity", group_id, size)
        g = self._require(group_id)
        if not g.min_size <= size <= g.max_size:
            raise ClientError(f"desired {size} outside [{g.min_size}, {g.max_size}]")
        g.desired = size
        if self.auto_launch:
            while len(g.members) < g.desired:
                self._launch(g)

    async def terminate_in_group(self, group_id: str, instance_id: str) -> None:
        self._log("terminate_in_group", group_id, instance_id)
        g = self._require(group_id)
        if instance_id not in g.members:
            raise ClientError(f"{instance_id} is not in group {group_id}")
        self._check_min(g, "Terminating", instance_id)
        del g.members[instance_id]
        g.desired -= 1
        self.terminated.append(instance_id)
        if self._cluster is not None:
            self._cluster.leave(instance_id)

    # --- internals

    def _require(self, group_id: str) -> _Group:
        try:
            return self._groups[group_id]
        except KeyError:
            raise UnexpectedState(f"group {group_id} no longer exists") from None

    @staticmethod
    def _check_min(g: _Group, action: str, instance_id: str) -> None:
        if g.desired - 1 < g.min_size:
            raise ClientError(
                f"{action} {instance_id} would cause desiredSize < minSize {g.min_size}"
            )

    def _launch(self, g: _Group) -> None:
        iid = f"i-{next(self._ids):017x}"
        g.members[iid] = NodeCandidate(instance_id=iid, launch_time=self._clock())
        logger.debug(f"InMemoryFleet launched {iid} in {g.group_id}")
        if self._cluster is not None:
            self._cluster.join(iid)

    @staticmethod
    def _snapshot(g: _Group, tag_key: Optional[str] = None) -> GroupSnapshot:
        return GroupSnapshot(
            group_id=g.group_id,
            current_size=len(g.members),
            desired_size=g.desired,
            min_size=g.min_size,
            max_size=g.max_size,
            member_ids=tuple(sorted(g.members)),
            tag_predicate=tag_key or next(iter(sorted(g.tag_keys))),
        )
