import random
from typing import Optional, Tuple

from github_pr_client.models import BackoffState, BackoffStrategy


def next_interval(
    strategy: BackoffStrategy,
    state: BackoffState,
    rng: Optional[random.Random] = None,
) -> Tuple[float, BackoffState]:
    """Returns the next polling delay and the state to pass on the following call.

    The first call yields ``min_interval``; each later call grows the previous
    delay by ``growth_factor`` and clamps it to ``max_interval``. With jitter the
    returned delay is drawn from ``[interval / 2, interval]`` while the state keeps
    the un-jittered value.
    """
    if state.interval is None:
        interval = strategy.min_interval
    else:
        interval = state.interval * strategy.growth_factor
    interval = min(max(interval, strategy.min_interval), strategy.max_interval)

    delay = interval
    if strategy.jitter:
        delay = (rng or random).uniform(interval / 2, interval)

    return delay, BackoffState(attempt=state.attempt + 1, interval=interval)


class Backoff:
    """Holds the backoff state of a single wait"""

    def __init__(self, strategy: BackoffStrategy, rng: Optional[random.Random] = None):
        self.strategy = strategy
        self.rng = rng
        self.state = BackoffState()

    @property
    def attempt(self) -> int:
        return self.state.attempt

    def next(self) -> float:
        delay, self.state = next_interval(self.strategy, self.state, self.rng)
        return delay

    def reset(self) -> None:
        self.state = BackoffState()
