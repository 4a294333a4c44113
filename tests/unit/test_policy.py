"""
Unit tests for the fixed-interval retry combinator.
"""

import pytest

from node_rotation.errors import ConvergenceTimeout, NotConverged, PreconditionFailed
from node_rotation.policy import (
    CLUSTER_SIZE_POLICY,
    SHARD_MIGRATION_POLICY,
    RetryPolicy,
    retry_fixed_interval,
)


class Flaky:
    """Fails the first N calls, then returns 'ok'."""

    def __init__(self, fail_first_n: int, exc: Exception | None = None):
        self.remaining = fail_first_n
        self.calls = 0
        self.exc = exc or NotConverged("not yet")

    async def __call__(self):
        self.calls += 1
        if self.remaining > 0:
            self.remaining -= 1
            raise self.exc
        return "ok"


@pytest.mark.asyncio
async def test_returns_first_success_without_sleeping(sleep):
    op = Flaky(0)
    assert await retry_fixed_interval(op, 30, 20, sleep=sleep) == "ok"
    assert op.calls == 1
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_retries_at_fixed_interval_until_success(sleep):
    op = Flaky(3)
    assert await retry_fixed_interval(op, 30, 20, sleep=sleep) == "ok"
    assert op.calls == 4
    assert sleep.delays == [30, 30, 30]


@pytest.mark.asyncio
async def test_success_on_last_allowed_attempt(sleep):
    op = Flaky(19)
    assert await retry_fixed_interval(op, 30, 20, sleep=sleep) == "ok"
    assert op.calls == 20


@pytest.mark.asyncio
async def test_timeout_after_exactly_max_attempts(sleep):
    op = Flaky(1000)
    with pytest.raises(ConvergenceTimeout) as ei:
        await retry_fixed_interval(op, 30, 20, label="ClusterSizeCheck", sleep=sleep)

    assert op.calls == 20
    # no sleep after the final poll
    assert sleep.delays == [30] * 19
    assert ei.value.attempts == 20
    assert ei.value.state == "ClusterSizeCheck"
    assert isinstance(ei.value.__cause__, NotConverged)


@pytest.mark.asyncio
async def test_blanket_retry_covers_every_error_type(sleep):
    op = Flaky(2, exc=PreconditionFailed("looks fatal"))
    assert await retry_fixed_interval(op, 1, 5, sleep=sleep) == "ok"


@pytest.mark.asyncio
async def test_classifier_can_stop_retrying(sleep):
    op = Flaky(5, exc=ValueError("bad"))
    with pytest.raises(ValueError):
        await retry_fixed_interval(
            op, 1, 5, classify_retryable=lambda e: not isinstance(e, ValueError), sleep=sleep
        )
    assert op.calls == 1


@pytest.mark.asyncio
async def test_on_retry_hook_sees_every_failure(sleep):
    seen = []
    op = Flaky(2)
    await retry_fixed_interval(op, 1, 5, sleep=sleep, on_retry=lambda n, e: seen.append(n))
    assert seen == [1, 2]


@pytest.mark.asyncio
async def test_rejects_invalid_budget(sleep):
    with pytest.raises(ValueError):
        await retry_fixed_interval(Flaky(0), 1, 0, sleep=sleep)
    with pytest.raises(ValueError):
        await retry_fixed_interval(Flaky(0), -1, 3, sleep=sleep)


def test_default_policies_match_rotation_budgets():
    assert (CLUSTER_SIZE_POLICY.interval_sec, CLUSTER_SIZE_POLICY.max_attempts) == (30, 20)
    assert (SHARD_MIGRATION_POLICY.interval_sec, SHARD_MIGRATION_POLICY.max_attempts) == (120, 195)
    assert SHARD_MIGRATION_POLICY.budget_sec == 120 * 194


@pytest.mark.asyncio
async def test_policy_run_delegates(sleep):
    op = Flaky(1)
    policy = RetryPolicy(interval_sec=120, max_attempts=3)
    assert await policy.run(op, sleep=sleep) == "ok"
    assert sleep.delays == [120]
