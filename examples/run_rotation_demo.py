"""
Demo script for RotationOrchestrator.

Rotates the oldest node of a fake five-node group: detach, add a
replacement, wait for it to join, drain shards, terminate. Polls are
shortened so the whole run takes a few seconds.
"""

import asyncio
from datetime import datetime, timedelta, timezone

from loguru import logger

from node_rotation import RetryPolicy, RotationOrchestrator, RotationRequest
from node_rotation.clients import InMemoryCluster, InMemoryFleet
from node_rotation.models import NodeCandidate
from node_rotation.sinks import InMemoryAlertSink, InMemoryOutputSink, RunLedger


def build_fleet() -> tuple[InMemoryFleet, InMemoryCluster]:
    now = datetime.now(timezone.utc)
    ages = {"i-0a1": 12, "i-0b2": 3, "i-0c3": 3, "i-0d4": 2, "i-0e5": 1}

    cluster = InMemoryCluster({iid: 20 for iid in ages}, drain_polls=3)
    fleet = InMemoryFleet(cluster=cluster)
    fleet.add_group(
        "es-data-demo",
        [
            NodeCandidate(instance_id=iid, launch_time=now - timedelta(days=d))
            for iid, d in ages.items()
        ],
    )
    return fleet, cluster


async def main():
    fleet, cluster = build_fleet()
    output = InMemoryOutputSink()
    alerts = InMemoryAlertSink()

    orchestrator = RotationOrchestrator(
        fleet,
        cluster,
        alerts=alerts,
        output=output,
        ledger=RunLedger(),
        cluster_size_policy=RetryPolicy(interval_sec=0.2, max_attempts=20),
        shard_migration_policy=RetryPolicy(interval_sec=0.5, max_attempts=10),
    )

    logger.info("🚀 Starting rotation demo (threshold 7 days)")
    result = await orchestrator.run(RotationRequest(age_threshold_days=7))

    logger.info(f"Path: {' -> '.join(result.states)}")
    for rec in output.records:
        logger.info(f"[{rec.step}] {rec.payload}")

    group = fleet.group("es-data-demo")
    logger.info(
        f"Final group: size={group.current_size} desired={group.desired_size} "
        f"members={list(group.member_ids)}"
    )
    logger.info(f"Shards per node: {cluster.shards}")

    if result.ok:
        logger.info(f"✅ Rotation {result.outcome.value}: retired {result.target_instance_id}")
    else:
        logger.error(f"❌ Rotation failed in {result.failed_state}: {alerts.fired[0].describe()}")


if __name__ == "__main__":
    asyncio.run(main())
