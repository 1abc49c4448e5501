import random
import threading
from collections.abc import Sequence

from geo_resolver.config import LoadBalanceStrategy
from geo_resolver.rate_limiter import RateLimiter
from geo_resolver.registry import Provider


class Selector:
    """Picks one provider out of the currently available candidates.

    - round_robin: a single process-wide cursor, advanced on every call, so
      fairness is global across all concurrent lookups.
    - random: uniform pick.
    - least_used: smallest current window count; the first one wins on ties.
    """

    def __init__(
        self,
        limiter: RateLimiter,
        strategy: LoadBalanceStrategy = LoadBalanceStrategy.round_robin,
        rng: random.Random | None = None,
    ) -> None:
        self._limiter = limiter
        self.strategy = strategy
        self._rng = rng or random.Random()
        self._cursor = -1
        self._lock = threading.Lock()

    def select_next(self, candidates: Sequence[Provider]) -> Provider:
        if not candidates:
            raise ValueError("select_next() requires at least one candidate")

        if self.strategy == LoadBalanceStrategy.random:
            return self._rng.choice(candidates)

        if self.strategy == LoadBalanceStrategy.least_used:
            return min(candidates, key=self._limiter.count)

        with self._lock:
            self._cursor = (self._cursor + 1) % len(candidates)
            return candidates[self._cursor]
