"""
FleetClient backed by EC2 Auto Scaling (boto3).

boto3 is synchronous; each call runs in a worker thread so the rotation
loop stays on asyncio. Errors are mapped into the rotation taxonomy.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Optional

import boto3
from loguru import logger

from ..errors import map_client_error
from ..models import GroupSnapshot, NodeCandidate

_LIVE_LIFECYCLE_STATES = {"InService", "Pending", "Pending:Wait", "Pending:Proceed"}


class Boto3FleetClient:
    def __init__(
        self,
        region_name: Optional[str] = None,
        *,
        autoscaling: Any = None,
        ec2: Any = None,
    ):
        session = boto3.Session(region_name=region_name)
        self._asg = autoscaling or session.client("autoscaling")
        self._ec2 = ec2 or session.client("ec2")

    # ---------- internal helpers ----------

    async def _call(self, fn: Callable[..., Any], **kwargs) -> Any:
        try:
            return await asyncio.to_thread(fn, **kwargs)
        except Exception as e:
            raise map_client_error(e) from e

    async def _raw_groups(self, **kwargs) -> list[dict]:
        def _collect() -> list[dict]:
            pages = self._asg.get_paginator("describe_auto_scaling_groups").paginate(**kwargs)
            out: list[dict] = []
            for page in pages:
                out.extend(page.get("AutoScalingGroups", []))
            return out

        return await self._call(_collect)

    @staticmethod
    def _snapshot(raw: dict, tag_key: str) -> GroupSnapshot:
        members = [
            i["InstanceId"]
            for i in raw.get("Instances", [])
            if i.get("LifecycleState") in _LIVE_LIFECYCLE_STATES
        ]
        return GroupSnapshot(
            group_id=raw["AutoScalingGroupName"],
            current_size=len(members),
            desired_size=raw["DesiredCapacity"],
            min_size=raw["MinSize"],
            max_size=raw["MaxSize"],
            member_ids=tuple(sorted(members)),
            tag_predicate=tag_key,
        )

    # ---------- reads ----------

    async def describe_groups(self, tag_key: str) -> list[GroupSnapshot]:
        raw = await self._raw_groups(Filters=[{"Name": "tag-key", "Values": [tag_key]}])
        groups = [self._snapshot(g, tag_key) for g in raw]
        logger.debug(f"{len(groups)} group(s) tagged {tag_key}: {[g.group_id for g in groups]}")
        return groups

    async def describe_instances(self, group_id: str) -> list[NodeCandidate]:
        raw = await self._raw_groups(AutoScalingGroupNames=[group_id])
        if not raw:
            return []
        ids = [
            i["InstanceId"]
            for i in raw[0].get("Instances", [])
            if i.get("LifecycleState") in _LIVE_LIFECYCLE_STATES
        ]
        if not ids:
            return []

        resp = await self._call(self._ec2.describe_instances, InstanceIds=ids)
        out: list[NodeCandidate] = []
        for reservation in resp.get("Reservations", []):
            for inst in reservation.get("Instances", []):
                if inst.get("State", {}).get("Name") != "running":
                    continue
                out.append(
                    NodeCandidate(
                        instance_id=inst["InstanceId"],
                        launch_time=inst["LaunchTime"],
                        private_ip=inst.get("PrivateIpAddress"),
                    )
                )
        return out

    # ---------- mutations ----------

    async def detach_from_scaling(
        self, group_id: str, instance_id: str, *, decrement: bool = False
    ) -> None:
        await self._call(
            self._asg.detach_instances,
            InstanceIds=[instance_id],
            AutoScalingGroupName=group_id,
            ShouldDecrementDesiredCapacity=decrement,
        )

    async def attach_to_scaling(self, group_id: str, instance_id: str) -> None:
        await self._call(
            self._asg.attach_instances,
            InstanceIds=[instance_id],
            AutoScalingGroupName=group_id,
        )

    async def set_desired_capacity(self, group_id: str, size: int) -> None:
        await self._call(
            self._asg.set_desired_capacity,
            AutoScalingGroupName=group_id,
            DesiredCapacity=size,
            HonorCooldown=False,
        )

    async def terminate_in_group(self, group_id: str, instance_id: str) -> None:
        # group id is implied by the instance for this API
        await self._call(
            self._asg.terminate_instance_in_auto_scaling_group,
            InstanceId=instance_id,
            ShouldDecrementDesiredCapacity=True,
        )
