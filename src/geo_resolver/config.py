import os
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from geo_resolver.errors import ConfigurationError

CONFIG_ENV_VAR = "GEO_RESOLVER_CONFIG"
DEFAULT_CONFIG_PATH = Path(__file__).with_name("default_config.json")

DEFAULT_RESPONSE_FIELDS = [
    "ip",
    "country",
    "country_code",
    "region",
    "city",
    "postal_code",
    "latitude",
    "longitude",
    "timezone",
    "isp",
]


class LoadBalanceStrategy(str, Enum):
    """Supported strategies for picking the next upstream provider."""

    round_robin = "round_robin"
    random = "random"
    least_used = "least_used"


class StatusCheck(BaseModel):
    """How a provider reports an error inside a successful (2xx) JSON body.

    Examples:
        ip-api.com: {"path": "status", "success_value": "success", "message_path": "message"}
        ipapi.co:   {"path": "error", "failure_value": true, "message_path": "reason"}
    """

    path: str
    success_value: Any = None
    failure_value: Any = None
    message_path: str | None = None

    @model_validator(mode="after")
    def _check_exactly_one_value(self) -> "StatusCheck":
        if (self.success_value is None) == (self.failure_value is None):
            raise ValueError("status_check needs exactly one of success_value or failure_value")
        return self


class ProviderConfig(BaseModel):
    """Raw description of one upstream provider, as found in the configuration file."""

    name: str = Field(min_length=1)
    url: str = Field(description="URL template; `{ip}` is replaced with the address to look up.")
    enabled: bool = True
    max_requests: int = Field(ge=1, description="Maximum requests per time window.")
    time_window: float = Field(gt=0, description="Window length in seconds.")
    timeout: float | None = Field(default=None, gt=0, description="Overrides default_timeout when set.")
    field_mapping: dict[str, str] = Field(default_factory=dict)
    status_check: StatusCheck | None = None


class IpHeader(BaseModel):
    """A request header that may carry the client IP. Lower priority values are checked first."""

    name: str = Field(min_length=1)
    priority: int = 0


class ResolverSettings(BaseModel):
    """Top-level resolver configuration, loaded once at startup."""

    upstream_apis: list[ProviderConfig] = Field(default_factory=list)
    default_timeout: float = Field(default=5.0, gt=0)
    retry_count: int = Field(default=2, ge=0)
    retry_backoff: float = Field(default=0.1, ge=0)
    cache_ttl: float = Field(default=3600, ge=0)
    cache_max_entries: int | None = Field(default=None, ge=1)
    load_balance_strategy: LoadBalanceStrategy = LoadBalanceStrategy.round_robin
    ip_headers: list[IpHeader] = Field(
        default_factory=lambda: [
            IpHeader(name="x-forwarded-for", priority=1),
            IpHeader(name="x-real-ip", priority=2),
        ]
    )
    response_fields: list[str] = Field(default_factory=lambda: list(DEFAULT_RESPONSE_FIELDS))
    join_separator: str = ""

    @field_validator("ip_headers", mode="before")
    @classmethod
    def _coerce_ip_headers(cls, value: Any) -> Any:
        """Accept a plain list of header names; position then becomes the priority."""
        if not isinstance(value, list):
            return value
        return [
            {"name": item, "priority": position} if isinstance(item, str) else item
            for position, item in enumerate(value, start=1)
        ]


def load_settings(path: str | Path | None = None) -> ResolverSettings:
    """Load settings from `path`, $GEO_RESOLVER_CONFIG, or the packaged default config.

    Any problem reading or validating the file is a startup-time ConfigurationError.
    """
    if path is None:
        path = os.getenv(CONFIG_ENV_VAR) or DEFAULT_CONFIG_PATH
    config_path = Path(path)

    try:
        raw = config_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigurationError(f"Cannot read configuration file {config_path}: {exc}") from exc

    try:
        return ResolverSettings.model_validate_json(raw)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid configuration in {config_path}: {exc}") from exc
