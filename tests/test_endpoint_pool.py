"""
Test endpoint health bookkeeping.
"""

import pytest

from incubator.core.exceptions import ConfigurationError
from incubator.services.endpoint_pool import EndpointPool

from .conftest import FakeClock, RPC_A, RPC_B


def test_empty_pool_is_a_configuration_error():
    with pytest.raises(ConfigurationError):
        EndpointPool([])


def test_round_robin_wraps_around():
    pool = EndpointPool([RPC_A, RPC_B])

    assert pool.next_index(0) == 1
    assert pool.next_index(1) == 0
    assert pool.url_at(2) == RPC_A


def test_outcomes_update_counters():
    clock = FakeClock(100.0)
    pool = EndpointPool([RPC_A, RPC_B], clock=clock)

    pool.record_attempt(RPC_A)
    pool.record_failure(RPC_A)
    clock.advance(5)
    pool.record_attempt(RPC_A)
    pool.record_failure(RPC_A)

    health = pool.health(RPC_A)
    assert health.consecutive_failures == 2
    assert health.total_attempts == 2
    assert health.last_attempt_time == 105.0
    assert health.last_success_time is None

    clock.advance(1)
    pool.record_attempt(RPC_A)
    pool.record_success(RPC_A)

    assert health.consecutive_failures == 0
    assert health.last_success_time == 106.0
    assert health.success_rate == pytest.approx(1 / 3)
    assert pool.health(RPC_B).total_attempts == 0


def test_snapshot_returns_copies():
    pool = EndpointPool([RPC_A])
    snapshot = pool.snapshot()

    snapshot[0].consecutive_failures = 99

    assert pool.health(RPC_A).consecutive_failures == 0


def test_reset_clears_health_but_keeps_endpoints():
    pool = EndpointPool([RPC_A, RPC_B])
    pool.record_attempt(RPC_B)
    pool.record_failure(RPC_B)

    pool.reset()

    assert pool.urls == [RPC_A, RPC_B]
    assert pool.health(RPC_B).total_failures == 0
    assert pool.health(RPC_B).to_dict()["success_rate"] == 0.0
