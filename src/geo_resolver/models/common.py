from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class LookupResult(BaseModel):
    """Result of one successful provider lookup.

    `data` holds the normalized standard fields limited to the configured
    allow-list; `raw_data` keeps the provider's payload untouched.
    """

    model_config = ConfigDict(frozen=True)

    source: str = Field(description="Name of the provider that answered.")
    data: dict[str, Any]
    raw_data: Any = None


class ProviderStatus(BaseModel):
    """Point-in-time rate-limit view of a single provider."""

    name: str
    enabled: bool
    max_requests: int
    time_window: float
    current_requests: int
    time_left: int
    available: bool


class CacheItem(BaseModel):
    ip: str
    source: str
    age: int
    expires_in: int


class CacheSnapshot(BaseModel):
    enabled: bool = True
    ttl: float
    size: int
    max_entries: int | None = None
    items: list[CacheItem] = Field(default_factory=list)
