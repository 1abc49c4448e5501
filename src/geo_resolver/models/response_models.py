from typing import Any

from pydantic import BaseModel, Field

from geo_resolver.config import LoadBalanceStrategy
from geo_resolver.models.common import CacheSnapshot, ProviderStatus


class HealthResponse(BaseModel):
    """Response model for the health check endpoint."""

    status: str


class IPLookupResponse(BaseModel):
    """Response model for IP geolocation lookup."""

    source: str = Field(description="Provider that answered the lookup.")
    data: dict[str, Any]
    raw_data: Any = None


class LoadBalanceInfo(BaseModel):
    strategy: LoadBalanceStrategy
    strategies_available: list[LoadBalanceStrategy] = Field(default_factory=lambda: list(LoadBalanceStrategy))


class ResolverConfigSummary(BaseModel):
    default_timeout: float
    retry_count: int
    cache_ttl: float
    load_balance_strategy: LoadBalanceStrategy


class StatusResponse(BaseModel):
    """Response model for the provider/cache status endpoint."""

    providers: list[ProviderStatus]
    cache: CacheSnapshot
    load_balance: LoadBalanceInfo
    config: ResolverConfigSummary


class ClearCacheResponse(BaseModel):
    removed: int
    message: str
