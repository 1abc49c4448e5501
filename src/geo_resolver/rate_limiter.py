"""Per-provider fixed request windows.

Each provider gets one RateWindow. The count grows by one for every dispatched
call attempt and drops back to zero once the window length has elapsed since
the window started.
"""

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from geo_resolver.logger import logger
from geo_resolver.models.common import ProviderStatus
from geo_resolver.registry import Provider, ProviderRegistry

Clock = Callable[[], float]


@dataclass
class RateWindow:
    count: int
    started_at: float


class RateLimiter:
    """Tracks request windows for every provider in the registry.

    All windows live in one map guarded by a lock, so the availability check and
    the increment in `try_acquire` are atomic even when lookups run on threads.
    """

    def __init__(self, registry: ProviderRegistry, clock: Clock = time.monotonic) -> None:
        self._registry = registry
        self._clock = clock
        self._lock = threading.Lock()
        now = clock()
        self._windows: dict[str, RateWindow] = {
            provider.name: RateWindow(count=0, started_at=now) for provider in registry
        }

    def _check(self, provider: Provider, now: float) -> bool:
        # Caller must hold self._lock.
        if not provider.enabled:
            return False

        window = self._windows[provider.name]
        if now - window.started_at > provider.time_window:
            window.count = 0
            window.started_at = now
            logger.debug(f"Rate window reset provider={provider.name}")
            return True

        return window.count < provider.max_requests

    def is_available(self, provider: Provider) -> bool:
        """True iff the provider is enabled and has quota left in its current window."""
        with self._lock:
            return self._check(provider, self._clock())

    def record_attempt(self, provider: Provider) -> None:
        """Count one dispatched attempt. Must be called before the network call."""
        with self._lock:
            window = self._windows[provider.name]
            window.count += 1
            count = window.count
        logger.debug(f"Rate window usage provider={provider.name} count={count}/{provider.max_requests}")

    def try_acquire(self, provider: Provider) -> bool:
        """Check availability and record an attempt as one atomic step."""
        with self._lock:
            if not self._check(provider, self._clock()):
                return False
            window = self._windows[provider.name]
            window.count += 1
            count = window.count
        logger.debug(f"Rate window usage provider={provider.name} count={count}/{provider.max_requests}")
        return True

    def available_providers(self) -> list[Provider]:
        """Providers that can take a request right now, in registry order."""
        with self._lock:
            now = self._clock()
            return [provider for provider in self._registry if self._check(provider, now)]

    def count(self, provider: Provider) -> int:
        with self._lock:
            return self._windows[provider.name].count

    def status(self) -> list[ProviderStatus]:
        statuses: list[ProviderStatus] = []
        with self._lock:
            now = self._clock()
            for provider in self._registry:
                available = self._check(provider, now)
                window = self._windows[provider.name]
                elapsed = now - window.started_at
                statuses.append(
                    ProviderStatus(
                        name=provider.name,
                        enabled=provider.enabled,
                        max_requests=provider.max_requests,
                        time_window=provider.time_window,
                        current_requests=window.count,
                        time_left=max(0, int(provider.time_window - elapsed)),
                        available=available,
                    )
                )
        return statuses
