from typing import Any

import httpx

from geo_resolver.config import ResolverSettings
from geo_resolver.errors import ProviderError
from geo_resolver.registry import Provider


class MockResponse:
    def __init__(self, status_code: int, payload: Any = None, text: str = "") -> None:
        self.status_code = status_code
        self._payload = {} if payload is None else payload
        self.text = text

    def json(self) -> Any:
        return self._payload


class MockAsyncClient:
    """Minimal async context-manager mock for httpx.AsyncClient.

    Records the requested URLs and the timeout it was built with.
    """

    def __init__(self, response: MockResponse, timeout: Any = None) -> None:
        self._response = response
        self.timeout = timeout
        self.requested_urls: list[str] = []

    async def __aenter__(self) -> "MockAsyncClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        return None

    async def get(self, url: str) -> MockResponse:
        self.requested_urls.append(url)
        return self._response


class FailingAsyncClient:
    """Async client whose GET raises the given httpx exception type to simulate network failure."""

    def __init__(self, url: str, exc_type: type[httpx.RequestError] = httpx.ConnectError, **kwargs: Any) -> None:
        self._url = url
        self._exc_type = exc_type

    async def __aenter__(self) -> "FailingAsyncClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        return None

    async def get(self, url: str) -> MockResponse:
        request = httpx.Request("GET", self._url)
        raise self._exc_type("Network failure", request=request)


class FakeClock:
    """Manually advanced replacement for time.monotonic."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeProviderClient:
    """Stand-in for ProviderClient driven by per-provider scripted outcomes.

    `outcomes` maps a provider name to either a payload dict (success), an
    exception instance (raised), or a list of those consumed in order.
    Providers without an entry answer with a default payload.
    """

    def __init__(self, outcomes: dict[str, Any] | None = None) -> None:
        self._outcomes = outcomes or {}
        self.calls: list[tuple[str, str]] = []

    async def fetch(self, provider: Provider, ip: str) -> dict[str, Any]:
        self.calls.append((provider.name, ip))
        outcome = self._outcomes.get(provider.name, {"ip": ip, "country": provider.name})
        if isinstance(outcome, list):
            outcome = outcome.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    @property
    def called_providers(self) -> list[str]:
        return [name for name, _ in self.calls]


def provider_config(name: str, **overrides: Any) -> dict[str, Any]:
    """Raw provider config dict with sensible test defaults."""
    config: dict[str, Any] = {
        "name": name,
        "url": f"https://{name}/json/{{ip}}",
        "enabled": True,
        "max_requests": 100,
        "time_window": 60,
        "field_mapping": {"ip": "ip", "country": "country"},
    }
    config.update(overrides)
    return config


def make_settings(*providers: dict[str, Any], **overrides: Any) -> ResolverSettings:
    """Build ResolverSettings for tests; no backoff delay unless overridden."""
    raw: dict[str, Any] = {
        "upstream_apis": list(providers) or [provider_config("alpha"), provider_config("beta")],
        "retry_count": 1,
        "retry_backoff": 0,
        "cache_ttl": 300,
        "response_fields": ["ip", "country"],
    }
    raw.update(overrides)
    return ResolverSettings.model_validate(raw)


def provider_failure(name: str, message: str = "boom") -> ProviderError:
    return ProviderError(name, message)
