import asyncio
import random
import time
from dataclasses import dataclass, field
from typing import Any

from geo_resolver.cache import ResponseCache
from geo_resolver.clients.provider_client import ProviderClient
from geo_resolver.config import ResolverSettings
from geo_resolver.errors import AllAttemptsFailedError, NoProviderAvailableError, ProviderError
from geo_resolver.field_mapping import apply_field_mapping
from geo_resolver.logger import logger
from geo_resolver.models.common import CacheSnapshot, LookupResult, ProviderStatus
from geo_resolver.rate_limiter import Clock, RateLimiter
from geo_resolver.registry import Provider, ProviderRegistry
from geo_resolver.selector import Selector


@dataclass
class LookupAttempt:
    """Bookkeeping for one resolve() call; discarded when it returns."""

    tried: set[str] = field(default_factory=set)
    round: int = 0
    last_error: ProviderError | None = None
    dispatched: int = 0


class GeoResolver:
    """Resolves an IP to geolocation data through rate-limited, load-balanced providers.

    A lookup is served from the cache when possible. Otherwise providers are
    tried one at a time: a failed provider is skipped for the rest of the
    current round, and once every available provider has failed a new round
    starts after a short backoff, up to `retry_count` extra rounds.
    """

    def __init__(
        self,
        settings: ResolverSettings,
        registry: ProviderRegistry,
        limiter: RateLimiter,
        selector: Selector,
        cache: ResponseCache,
        client: ProviderClient,
    ) -> None:
        self.settings = settings
        self.registry = registry
        self._limiter = limiter
        self._selector = selector
        self._cache = cache
        self._client = client

    async def resolve(self, ip: str) -> LookupResult:
        """Look up `ip`, raising NoProviderAvailableError or AllAttemptsFailedError on exhaustion.

        AllAttemptsFailedError is raised only when at least one provider call was
        made, and it carries the last ProviderError. If no call was ever made,
        NoProviderAvailableError is raised instead. That includes the case where
        every candidate lost its quota to a concurrent lookup between selection
        and dispatch: the local "request limit reached" error is not rethrown.
        """
        cached = self._cache.get(ip)
        if cached is not None:
            logger.debug(f"Cache hit ip={ip} source={cached.source}")
            return cached

        if not self._limiter.available_providers():
            logger.error(f"No provider available ip={ip}")
            raise NoProviderAvailableError("All providers are disabled or have reached their request limit.")

        attempt = LookupAttempt()
        max_retries = self.settings.retry_count

        while attempt.round <= max_retries:
            candidates = [p for p in self._limiter.available_providers() if p.name not in attempt.tried]

            if not candidates:
                if attempt.round >= max_retries:
                    break
                attempt.tried.clear()
                attempt.round += 1
                logger.info(f"All candidates failed, starting retry round ip={ip} round={attempt.round}")
                await asyncio.sleep(self.settings.retry_backoff)
                continue

            provider = self._selector.select_next(candidates)

            # Another lookup may have used up the quota since the candidates were computed.
            if not self._limiter.try_acquire(provider):
                attempt.last_error = ProviderError(provider.name, "Request limit reached before dispatch.")
                attempt.tried.add(provider.name)
                continue

            attempt.dispatched += 1
            try:
                payload = await self._client.fetch(provider, ip)
            except ProviderError as exc:
                logger.warning(
                    f"Provider lookup failed ip={ip} provider={provider.name} round={attempt.round} error={exc.message}"
                )
                attempt.last_error = exc
                attempt.tried.add(provider.name)
                continue

            result = self._build_result(provider, payload)
            self._cache.put(ip, result)
            logger.info(f"Lookup succeeded ip={ip} provider={provider.name} round={attempt.round}")
            return result

        if attempt.dispatched == 0 or attempt.last_error is None:
            logger.error(f"No provider could be dispatched ip={ip} rounds={attempt.round + 1}")
            raise NoProviderAvailableError("No provider was available for any retry round.")

        logger.error(
            f"All lookup attempts failed ip={ip} rounds={attempt.round + 1} "
            f"attempts={attempt.dispatched} last_error={attempt.last_error}"
        )
        raise AllAttemptsFailedError(attempt.last_error)

    def _build_result(self, provider: Provider, payload: dict[str, Any]) -> LookupResult:
        standard = apply_field_mapping(provider.field_mapping, payload, self.settings.join_separator)
        data = {name: standard[name] for name in self.settings.response_fields if name in standard}
        return LookupResult(source=provider.name, data=data, raw_data=payload)

    def list_provider_status(self) -> list[ProviderStatus]:
        return self._limiter.status()

    def cache_snapshot(self) -> CacheSnapshot:
        return self._cache.snapshot()

    def clear_cache(self) -> int:
        return self._cache.clear()


def create_resolver(
    settings: ResolverSettings,
    client: ProviderClient | None = None,
    clock: Clock = time.monotonic,
    rng: random.Random | None = None,
) -> GeoResolver:
    """Wire registry, limiter, selector and cache together from settings.

    Raises ConfigurationError when a provider description is malformed.
    """
    registry = ProviderRegistry.from_settings(settings)
    limiter = RateLimiter(registry, clock=clock)
    selector = Selector(limiter, settings.load_balance_strategy, rng=rng)
    cache = ResponseCache(settings.cache_ttl, max_entries=settings.cache_max_entries, clock=clock)
    logger.info(
        f"Resolver ready strategy={settings.load_balance_strategy.value} retry_count={settings.retry_count} "
        f"cache_ttl={settings.cache_ttl}"
    )
    return GeoResolver(settings, registry, limiter, selector, cache, client or ProviderClient())
