"""
Unit tests for request parsing and the small model helpers.
"""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from node_rotation.models import (
    DEFAULT_DISCOVERY_TAG_KEY,
    Alert,
    GroupSnapshot,
    NodeCandidate,
    Outcome,
    RotationRequest,
    RotationResult,
    RunRecord,
)


class TestRotationRequest:
    def test_defaults(self):
        req = RotationRequest()
        assert req.discovery_tag_key == DEFAULT_DISCOVERY_TAG_KEY
        assert req.age_threshold_days == 7
        assert req.target_instance_id is None
        assert req.execution_id

    def test_execution_ids_are_unique(self):
        assert RotationRequest().execution_id != RotationRequest().execution_id

    def test_scheduled_trigger_payload(self):
        req = RotationRequest.model_validate(
            {
                "autoScalingGroupDiscoveryTagKey": "RotateMe",
                "ageThresholdInDays": 14,
                "stepFunctionArn": "arn:aws:states:eu-west-1:1:stateMachine:x",
            }
        )
        assert req.discovery_tag_key == "RotateMe"
        assert req.age_threshold_days == 14

    def test_camel_case_keys(self):
        req = RotationRequest.model_validate(
            {"discoveryTagKey": "k", "ageThresholdDays": 3, "targetInstanceId": "i-1"}
        )
        assert (req.discovery_tag_key, req.age_threshold_days, req.target_instance_id) == (
            "k",
            3,
            "i-1",
        )

    def test_blank_override_means_no_override(self):
        assert RotationRequest(target_instance_id="  ").target_instance_id is None

    def test_blank_tag_key_rejected(self):
        with pytest.raises(ValidationError):
            RotationRequest(discovery_tag_key=" ")

    def test_negative_threshold_rejected(self):
        with pytest.raises(ValidationError):
            RotationRequest(age_threshold_days=-1)

    def test_frozen(self):
        req = RotationRequest()
        with pytest.raises(ValidationError):
            req.age_threshold_days = 1


class TestNodeCandidate:
    def test_naive_launch_time_is_utc(self):
        n = NodeCandidate(instance_id="i-1", launch_time=datetime(2025, 1, 1))
        assert n.launch_time.tzinfo is timezone.utc

    def test_age(self, now):
        n = NodeCandidate(instance_id="i-1", launch_time=now - timedelta(days=3))
        assert n.age(now) == timedelta(days=3)

    def test_sort_key_orders_by_time_then_id(self, make_node):
        nodes = [make_node("i-b", 5), make_node("i-a", 5), make_node("i-c", 9)]
        assert [n.instance_id for n in sorted(nodes, key=lambda n: n.sort_key)] == [
            "i-c",
            "i-a",
            "i-b",
        ]


def test_group_headroom():
    g = GroupSnapshot(group_id="g", current_size=3, desired_size=3, min_size=0, max_size=4)
    assert g.has_headroom
    assert not g.model_copy(update={"max_size": 3}).has_headroom


def test_alert_text():
    alert = Alert(
        execution_id="e1",
        group_id="g",
        target_instance_id="i-1",
        failed_state="ClusterSizeCheck",
        cause="ConvergenceTimeout: gave up",
    )
    assert "ClusterSizeCheck" in alert.describe()
    assert "i-1" in alert.describe()
    assert "Failed" in alert.subject

    resolved = Alert(execution_id="e2", group_id="g", resolved=True)
    assert "recovered" in resolved.subject
    assert "succeeded" in resolved.describe()


def test_run_record_status_is_validated():
    RunRecord(execution_id="e", status="started")
    with pytest.raises(ValidationError):
        RunRecord(execution_id="e", status="running")


def test_result_ok():
    base = dict(execution_id="e", final_state="x", states=())
    assert RotationResult(outcome=Outcome.SUCCEEDED, **base).ok
    assert RotationResult(outcome=Outcome.SKIPPED, **base).ok
    assert not RotationResult(outcome=Outcome.FAILED, **base).ok
