from collections.abc import Iterable, Iterator

from pydantic import BaseModel, ConfigDict

from geo_resolver.config import ProviderConfig, ResolverSettings, StatusCheck
from geo_resolver.errors import ConfigurationError
from geo_resolver.field_mapping import FieldExpression
from geo_resolver.logger import logger

IP_PLACEHOLDER = "{ip}"


class Provider(BaseModel):
    """Immutable, validated description of one upstream geolocation provider."""

    model_config = ConfigDict(frozen=True)

    name: str
    url_template: str
    enabled: bool
    max_requests: int
    time_window: float
    timeout: float
    field_mapping: dict[str, FieldExpression]
    status_check: StatusCheck | None = None

    def build_url(self, ip: str) -> str:
        return self.url_template.replace(IP_PLACEHOLDER, ip)


def build_provider(provider_config: ProviderConfig, default_timeout: float) -> Provider:
    """Validate a raw provider config and compile its field mapping.

    Raises ConfigurationError when the URL template has no `{ip}` placeholder,
    the field mapping is empty, or a mapping value cannot be parsed.
    """
    name = provider_config.name
    if IP_PLACEHOLDER not in provider_config.url:
        raise ConfigurationError(
            f"Provider {name!r}: url {provider_config.url!r} lacks the {IP_PLACEHOLDER} placeholder"
        )
    if not provider_config.field_mapping:
        raise ConfigurationError(f"Provider {name!r}: field_mapping must not be empty")

    field_mapping: dict[str, FieldExpression] = {}
    for standard_field, raw_path in provider_config.field_mapping.items():
        try:
            field_mapping[standard_field] = FieldExpression.parse(raw_path)
        except ValueError as exc:
            raise ConfigurationError(f"Provider {name!r}: field {standard_field!r}: {exc}") from exc

    return Provider(
        name=name,
        url_template=provider_config.url,
        enabled=provider_config.enabled,
        max_requests=provider_config.max_requests,
        time_window=provider_config.time_window,
        timeout=provider_config.timeout or default_timeout,
        field_mapping=field_mapping,
        status_check=provider_config.status_check,
    )


class ProviderRegistry:
    """Read-only, ordered collection of providers loaded once at startup."""

    def __init__(self, providers: Iterable[Provider]) -> None:
        self._providers = tuple(providers)
        self._by_name: dict[str, Provider] = {}
        for provider in self._providers:
            if provider.name in self._by_name:
                raise ConfigurationError(f"Duplicate provider name {provider.name!r}")
            self._by_name[provider.name] = provider

    @classmethod
    def from_settings(cls, settings: ResolverSettings) -> "ProviderRegistry":
        registry = cls(build_provider(item, settings.default_timeout) for item in settings.upstream_apis)
        logger.info(f"Loaded {len(registry)} providers names={registry.names}")
        return registry

    def __iter__(self) -> Iterator[Provider]:
        return iter(self._providers)

    def __len__(self) -> int:
        return len(self._providers)

    @property
    def names(self) -> list[str]:
        return [provider.name for provider in self._providers]

    def get(self, name: str) -> Provider:
        return self._by_name[name]
