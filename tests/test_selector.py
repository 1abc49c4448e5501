import random

import pytest

from geo_resolver.config import LoadBalanceStrategy
from geo_resolver.rate_limiter import RateLimiter
from geo_resolver.registry import ProviderRegistry
from geo_resolver.selector import Selector
from tests.common import FakeClock, make_settings, provider_config


@pytest.fixture
def registry() -> ProviderRegistry:
    return ProviderRegistry.from_settings(
        make_settings(provider_config("a"), provider_config("b"), provider_config("c"))
    )


@pytest.fixture
def limiter(registry: ProviderRegistry) -> RateLimiter:
    return RateLimiter(registry, clock=FakeClock())


def test_round_robin_rotates_through_candidates(registry: ProviderRegistry, limiter: RateLimiter) -> None:
    selector = Selector(limiter, LoadBalanceStrategy.round_robin)
    candidates = list(registry)

    picks = [selector.select_next(candidates).name for _ in range(7)]

    assert picks == ["a", "b", "c", "a", "b", "c", "a"]


def test_round_robin_cursor_is_shared_and_wraps_on_smaller_lists(
    registry: ProviderRegistry, limiter: RateLimiter
) -> None:
    selector = Selector(limiter)
    a, b, c = registry

    assert selector.select_next([a, b, c]) is a
    assert selector.select_next([a, b, c]) is b
    # cursor=2 wraps modulo the shorter list
    assert selector.select_next([b, c]) is b
    assert selector.select_next([c]) is c


def test_least_used_picks_smallest_count_first_on_ties(registry: ProviderRegistry, limiter: RateLimiter) -> None:
    selector = Selector(limiter, LoadBalanceStrategy.least_used)
    a, b, c = registry
    limiter.record_attempt(a)
    limiter.record_attempt(a)
    limiter.record_attempt(c)

    assert selector.select_next([a, b, c]) is b

    limiter.record_attempt(b)
    # b and c tie at 1; b comes first
    assert selector.select_next([a, b, c]) is b


def test_random_uses_injected_rng(registry: ProviderRegistry, limiter: RateLimiter) -> None:
    candidates = list(registry)
    expected = [random.Random(42).choice(candidates).name]
    selector = Selector(limiter, LoadBalanceStrategy.random, rng=random.Random(42))

    assert [selector.select_next(candidates).name] == expected


def test_random_only_returns_candidates(registry: ProviderRegistry, limiter: RateLimiter) -> None:
    selector = Selector(limiter, LoadBalanceStrategy.random)
    a, _, c = registry

    assert {selector.select_next([a, c]).name for _ in range(50)} <= {"a", "c"}


def test_empty_candidates_raise(limiter: RateLimiter) -> None:
    with pytest.raises(ValueError):
        Selector(limiter).select_next([])
