"""
Data models for node rotation.

Immutable inputs and snapshots are pydantic models; the per-run
RotationContext is a plain mutable dataclass owned by the Orchestrator.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

DEFAULT_DISCOVERY_TAG_KEY = "RotateWithElasticsearchNodeRotation"


class ClusterHealth(str, Enum):
    """Cluster health as reported by the data cluster."""

    GREEN = "green"
    YELLOW = "yellow"
    RED = "red"


class Outcome(str, Enum):
    SUCCEEDED = "succeeded"
    SKIPPED = "skipped"
    FAILED = "failed"


class RotationRequest(BaseModel):
    """Trigger payload for one rotation attempt.

    Accepts both the short keys and the keys emitted by the scheduled
    trigger (``autoScalingGroupDiscoveryTagKey``, ``ageThresholdInDays``).
    Extra keys (e.g. ``stepFunctionArn``) are ignored.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    discovery_tag_key: str = Field(
        DEFAULT_DISCOVERY_TAG_KEY,
        validation_alias=AliasChoices(
            "discovery_tag_key", "discoveryTagKey", "autoScalingGroupDiscoveryTagKey"
        ),
    )
    age_threshold_days: float = Field(
        7,
        ge=0,
        validation_alias=AliasChoices(
            "age_threshold_days", "ageThresholdDays", "ageThresholdInDays"
        ),
    )
    target_instance_id: Optional[str] = Field(
        None, validation_alias=AliasChoices("target_instance_id", "targetInstanceId")
    )
    execution_id: str = Field(
        default_factory=lambda: str(uuid.uuid4()),
        validation_alias=AliasChoices("execution_id", "executionId"),
    )

    @field_validator("discovery_tag_key")
    @classmethod
    def _tag_key_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("discovery tag key must not be blank")
        return v

    @field_validator("target_instance_id")
    @classmethod
    def _blank_override_is_none(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            return None
        return v


class NodeCandidate(BaseModel):
    """A group member eligible for rotation."""

    model_config = ConfigDict(frozen=True)

    instance_id: str
    launch_time: datetime
    private_ip: Optional[str] = None

    @field_validator("launch_time")
    @classmethod
    def _assume_utc(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @property
    def sort_key(self) -> tuple[datetime, str]:
        # equal launch times fall back to lexical instance id
        return (self.launch_time, self.instance_id)

    def age(self, now: datetime) -> timedelta:
        return now - self.launch_time


class GroupSnapshot(BaseModel):
    """Point-in-time view of the compute group."""

    model_config = ConfigDict(frozen=True)

    group_id: str
    current_size: int
    desired_size: int
    min_size: int
    max_size: int
    member_ids: tuple[str, ...] = ()
    tag_predicate: str = DEFAULT_DISCOVERY_TAG_KEY

    @property
    def has_headroom(self) -> bool:
        return self.max_size > self.desired_size

    def contains(self, instance_id: str) -> bool:
        return instance_id in self.member_ids


class Alert(BaseModel):
    """Terminal failure (or resolution) notice for one execution."""

    model_config = ConfigDict(frozen=True)

    execution_id: str
    group_id: Optional[str] = None
    target_instance_id: Optional[str] = None
    failed_state: Optional[str] = None
    cause: Optional[str] = None
    resolved: bool = False

    @property
    def subject(self) -> str:
        if self.resolved:
            return "Node rotation recovered"
        return "Failed to complete node rotation for a data cluster"

    def describe(self) -> str:
        if self.resolved:
            return (
                f"Node rotation for group {self.group_id} succeeded "
                f"(execution {self.execution_id}) after a previous failure."
            )
        return (
            f"Node rotation failed in state {self.failed_state} "
            f"(execution {self.execution_id}, group {self.group_id}, "
            f"target {self.target_instance_id}): {self.cause}"
        )


class RunRecord(BaseModel):
    """One row of the run ledger."""

    execution_id: str
    group_id: Optional[str] = None
    status: str
    at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    detail: Optional[str] = None

    @field_validator("status")
    @classmethod
    def _validate_status(cls, v: str) -> str:
        valid = {"started", "succeeded", "skipped", "failed"}
        if v not in valid:
            raise ValueError(f"Invalid status: {v}. Must be one of {valid}")
        return v


@dataclass
class RotationContext:
    """Mutable state threaded through one run.

    Created at run start and discarded at any terminal state. Only the
    Orchestrator holds a reference; steps receive it one at a time.
    """

    request: RotationRequest
    group: GroupSnapshot | None = None
    target: NodeCandidate | None = None
    cluster_node_id: str | None = None
    skip_rotation: bool = False
    skip_reason: str | None = None
    cluster_status: ClusterHealth | None = None
    expected_node_count: int | None = None
    observed_node_count: int | None = None
    migration_complete: bool = False
    last_error: BaseException | None = None
    failed_state: str | None = None
    history: list[str] = field(default_factory=list)

    @property
    def execution_id(self) -> str:
        return self.request.execution_id

    @property
    def group_id(self) -> str | None:
        return self.group.group_id if self.group else None

    @property
    def target_id(self) -> str | None:
        return self.target.instance_id if self.target else None

    def skip(self, reason: str) -> None:
        self.skip_rotation = True
        self.skip_reason = reason


@dataclass(frozen=True)
class RotationResult:
    """What a finished run reports back to the caller."""

    execution_id: str
    outcome: Outcome
    final_state: str
    states: tuple[str, ...]
    group_id: str | None = None
    target_instance_id: str | None = None
    failed_state: str | None = None
    error: str | None = None
    skip_reason: str | None = None

    @property
    def ok(self) -> bool:
        return self.outcome is not Outcome.FAILED
