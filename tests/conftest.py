"""
Pytest configuration and fixtures for node-rotation.

Provides a fixed clock, fake fleet/cluster builders and a recording sleep
so retry loops never actually wait.
"""

import asyncio
import sys
from datetime import datetime, timedelta, timezone

import pytest

from node_rotation.clients import InMemoryCluster, InMemoryFleet
from node_rotation.models import NodeCandidate

# Set policy *before* pytest-asyncio creates any loops
if sys.platform.startswith("win"):
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)
GROUP_ID = "es-data-PROD"


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def clock():
    return lambda: NOW


def node(instance_id: str, days_old: float, ip: str | None = None) -> NodeCandidate:
    return NodeCandidate(
        instance_id=instance_id,
        launch_time=NOW - timedelta(days=days_old),
        private_ip=ip,
    )


@pytest.fixture
def make_node():
    return node


class RecordingSleep:
    """Stands in for asyncio.sleep; remembers every requested delay."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def build_env(clock):
    """Factory: (ages in days, **kw) -> (fleet, cluster) with one tagged group."""

    def _build(
        ages,
        *,
        shards_per_node=10,
        min_size=0,
        max_size=None,
        cluster_kwargs=None,
        **fleet_kwargs,
    ):
        ids = [f"i-{n:03d}" for n in range(len(ages))]
        cluster = InMemoryCluster({iid: shards_per_node for iid in ids}, **(cluster_kwargs or {}))
        fleet = InMemoryFleet(cluster=cluster, clock=clock, **fleet_kwargs)
        fleet.add_group(
            GROUP_ID,
            [node(iid, age) for iid, age in zip(ids, ages)],
            min_size=min_size,
            max_size=max_size,
        )
        return fleet, cluster

    return _build
