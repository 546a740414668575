import random

import pytest
from pydantic import ValidationError

from github_pr_client.backoff import Backoff, next_interval
from github_pr_client.models import BackoffState, BackoffStrategy


def test_first_interval_is_min_interval():
    strategy = BackoffStrategy(min_interval=1.0, max_interval=10.0, growth_factor=2.0, jitter=False)

    delay, state = next_interval(strategy, BackoffState())

    assert delay == 1.0
    assert state.attempt == 1
    assert state.interval == 1.0


def test_intervals_grow_and_clamp_to_max():
    strategy = BackoffStrategy(min_interval=1.0, max_interval=5.0, growth_factor=2.0, jitter=False)
    backoff = Backoff(strategy)

    delays = [backoff.next() for _ in range(6)]

    assert delays == [1.0, 2.0, 4.0, 5.0, 5.0, 5.0]
    assert backoff.attempt == 6


@pytest.mark.parametrize(
    "min_interval,max_interval,factor",
    [(1.0, 1.0, 1.0), (0.5, 60.0, 1.05), (2.0, 3.0, 10.0), (10.0, 60.0, 1.0)],
)
def test_intervals_never_decrease_or_exceed_max(min_interval, max_interval, factor):
    strategy = BackoffStrategy(
        min_interval=min_interval, max_interval=max_interval, growth_factor=factor, jitter=False
    )
    backoff = Backoff(strategy)

    delays = [backoff.next() for _ in range(50)]

    assert all(a <= b for a, b in zip(delays, delays[1:]))
    assert max(delays) <= max_interval


def test_jitter_stays_within_lower_half_band():
    strategy = BackoffStrategy(min_interval=4.0, max_interval=4.0, growth_factor=1.0, jitter=True)
    backoff = Backoff(strategy, rng=random.Random(42))

    delays = [backoff.next() for _ in range(100)]

    assert all(2.0 <= delay <= 4.0 for delay in delays)
    assert len(set(delays)) > 1


def test_jitter_does_not_slow_growth():
    strategy = BackoffStrategy(min_interval=1.0, max_interval=8.0, growth_factor=2.0, jitter=True)
    backoff = Backoff(strategy, rng=random.Random(0))

    for _ in range(4):
        backoff.next()

    assert backoff.state.interval == 8.0


def test_next_interval_does_not_mutate_state():
    strategy = BackoffStrategy(min_interval=1.0, max_interval=5.0, growth_factor=2.0, jitter=False)
    state = BackoffState(attempt=2, interval=2.0)

    first = next_interval(strategy, state)
    second = next_interval(strategy, state)

    assert first == second
    assert state.interval == 2.0


def test_reset_starts_over():
    strategy = BackoffStrategy(min_interval=1.0, max_interval=5.0, growth_factor=3.0, jitter=False)
    backoff = Backoff(strategy)
    backoff.next()
    backoff.next()

    backoff.reset()

    assert backoff.next() == 1.0


def test_strategy_rejects_min_above_max():
    with pytest.raises(ValidationError):
        BackoffStrategy(min_interval=10.0, max_interval=1.0)


def test_strategy_rejects_shrinking_factor():
    with pytest.raises(ValidationError):
        BackoffStrategy(growth_factor=0.5)
