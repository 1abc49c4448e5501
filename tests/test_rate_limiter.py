import threading

from geo_resolver.rate_limiter import RateLimiter
from geo_resolver.registry import ProviderRegistry
from tests.common import FakeClock, make_settings, provider_config


def _limiter(*providers: dict, clock: FakeClock | None = None) -> tuple[RateLimiter, ProviderRegistry, FakeClock]:
    clock = clock or FakeClock()
    registry = ProviderRegistry.from_settings(make_settings(*providers))
    return RateLimiter(registry, clock=clock), registry, clock


def test_provider_at_limit_is_unavailable_until_window_elapses() -> None:
    limiter, registry, clock = _limiter(provider_config("alpha", max_requests=2, time_window=10))
    alpha = registry.get("alpha")

    limiter.record_attempt(alpha)
    assert limiter.is_available(alpha)
    limiter.record_attempt(alpha)
    assert not limiter.is_available(alpha)

    clock.advance(10)
    # Exactly at the window boundary the window has not yet expired.
    assert not limiter.is_available(alpha)

    clock.advance(0.5)
    assert limiter.is_available(alpha)
    assert limiter.count(alpha) == 0


def test_disabled_provider_is_never_available() -> None:
    limiter, registry, clock = _limiter(provider_config("alpha", enabled=False))
    alpha = registry.get("alpha")

    assert not limiter.is_available(alpha)
    clock.advance(3600)
    assert not limiter.is_available(alpha)


def test_available_providers_keeps_registry_order() -> None:
    limiter, registry, _ = _limiter(
        provider_config("a", max_requests=1),
        provider_config("b", enabled=False),
        provider_config("c"),
        provider_config("d"),
    )
    limiter.record_attempt(registry.get("a"))

    assert [p.name for p in limiter.available_providers()] == ["c", "d"]


def test_try_acquire_counts_only_when_available() -> None:
    limiter, registry, _ = _limiter(provider_config("alpha", max_requests=1))
    alpha = registry.get("alpha")

    assert limiter.try_acquire(alpha)
    assert not limiter.try_acquire(alpha)
    assert limiter.count(alpha) == 1


def test_try_acquire_never_exceeds_limit_under_threads() -> None:
    limiter, registry, _ = _limiter(provider_config("alpha", max_requests=25))
    alpha = registry.get("alpha")
    granted: list[bool] = []
    lock = threading.Lock()

    def worker() -> None:
        for _ in range(20):
            ok = limiter.try_acquire(alpha)
            with lock:
                granted.append(ok)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert granted.count(True) == 25
    assert limiter.count(alpha) == 25


def test_status_reports_usage_and_time_left() -> None:
    limiter, registry, clock = _limiter(
        provider_config("alpha", max_requests=1, time_window=60),
        provider_config("beta", enabled=False, max_requests=5, time_window=30),
    )
    limiter.record_attempt(registry.get("alpha"))
    clock.advance(15)

    alpha, beta = limiter.status()

    assert alpha.name == "alpha"
    assert alpha.current_requests == 1
    assert alpha.time_left == 45
    assert alpha.available is False
    assert beta.enabled is False
    assert beta.available is False
    assert beta.max_requests == 5
