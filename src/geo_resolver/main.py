from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Annotated

from fastapi import Depends, FastAPI, HTTPException, Request, status
from pydantic import ValidationError

from geo_resolver.client_ip import extract_client_ip
from geo_resolver.config import load_settings
from geo_resolver.errors import AllAttemptsFailedError, NoProviderAvailableError
from geo_resolver.exception_handlers import (
    pydantic_validation_exception_handler,
    unhandled_exception_handler,
)
from geo_resolver.logger import logger
from geo_resolver.models.request_models import IPLookupRequest
from geo_resolver.models.response_models import (
    ClearCacheResponse,
    HealthResponse,
    IPLookupResponse,
    LoadBalanceInfo,
    ResolverConfigSummary,
    StatusResponse,
)
from geo_resolver.resolver import GeoResolver, create_resolver


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    # Malformed configuration raises here and aborts startup.
    app.state.resolver = create_resolver(load_settings())
    logger.info("Started IP Geolocation Resolver")
    yield


app = FastAPI(
    title="IP Geolocation Resolver",
    version="0.1.0",
    description="Resolves IP geolocation through rate-limited, load-balanced upstream providers.",
    lifespan=lifespan,
)


def get_resolver(request: Request) -> GeoResolver:
    """Dependency providing the process-wide resolver built at startup."""
    return request.app.state.resolver


# Register global exception handlers using the shared handlers module.
app.add_exception_handler(ValidationError, pydantic_validation_exception_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)


async def _resolve(request: Request, resolver: GeoResolver, ip: str) -> IPLookupResponse:
    """Run a lookup and translate exhaustion errors into HTTP errors."""
    try:
        result = await resolver.resolve(ip)
    except NoProviderAvailableError as exc:
        logger.error(
            f"No provider available for lookup path={request.url.path} method={request.method} ip={ip} error={exc}"
        )
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={
                "code": "no_provider_available",
                "message": str(exc),
                "ip": ip,
            },
        ) from exc
    except AllAttemptsFailedError as exc:
        logger.error(
            f"All providers failed for lookup path={request.url.path} method={request.method} ip={ip} "
            f"last_provider={exc.last_error.provider} error={exc.last_error.message}"
        )
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={
                "code": "lookup_failed",
                "message": "Geolocation lookup failed for every upstream provider.",
                "ip": ip,
            },
        ) from exc

    data = result.data
    logger.info(
        f"Lookup served path={request.url.path} ip={ip} source={result.source} "
        f"country={data.get('country')} city={data.get('city')} isp={data.get('isp')}"
    )
    return IPLookupResponse(source=result.source, data=result.data, raw_data=result.raw_data)


@app.get(
    "/health",
    tags=["health"],
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Health check",
)
async def health() -> HealthResponse:
    """Basic health check endpoint."""
    return HealthResponse(status="ok")


@app.get(
    "/v1/ip",
    response_model=IPLookupResponse,
    status_code=status.HTTP_200_OK,
    tags=["ip"],
    summary="Look up geolocation information for an IP address or the caller.",
)
async def ip_lookup(
    request: Request,
    query: Annotated[IPLookupRequest, Depends()],
    resolver: Annotated[GeoResolver, Depends(get_resolver)],
) -> IPLookupResponse:
    """Look up geolocation information for either a specific IP or the caller's IP.

    - If `query.ip` is provided, that IP is used.
    - Otherwise, the client's IP is taken from the configured proxy headers,
      falling back to the connection's remote address.
    """
    ip = query.ip
    if ip:
        logger.info(f"Performing explicit IP lookup path={request.url.path} method={request.method} ip={ip}")
    else:
        client_host = request.client.host if request.client else None
        ip = extract_client_ip(request.headers, client_host, resolver.settings.ip_headers)
        logger.info(
            f"Performing client IP lookup path={request.url.path} method={request.method} "
            f"client_ip={ip} remote_addr={client_host}"
        )
    return await _resolve(request, resolver, ip)


@app.get(
    "/v1/ip/status",
    response_model=StatusResponse,
    status_code=status.HTTP_200_OK,
    tags=["admin"],
    summary="Provider rate-limit usage, cache contents and load-balancing settings.",
)
async def resolver_status(resolver: Annotated[GeoResolver, Depends(get_resolver)]) -> StatusResponse:
    """Report provider window usage and cache contents alongside the active load-balancing settings."""
    settings = resolver.settings
    providers = resolver.list_provider_status()
    cache = resolver.cache_snapshot()
    logger.info(f"Status requested providers={len(providers)} cache_size={cache.size}")
    return StatusResponse(
        providers=providers,
        cache=cache,
        load_balance=LoadBalanceInfo(strategy=settings.load_balance_strategy),
        config=ResolverConfigSummary(
            default_timeout=settings.default_timeout,
            retry_count=settings.retry_count,
            cache_ttl=settings.cache_ttl,
            load_balance_strategy=settings.load_balance_strategy,
        ),
    )


@app.delete(
    "/v1/ip/cache",
    response_model=ClearCacheResponse,
    status_code=status.HTTP_200_OK,
    tags=["admin"],
    summary="Remove every cached lookup result.",
)
async def clear_cache(resolver: Annotated[GeoResolver, Depends(get_resolver)]) -> ClearCacheResponse:
    """Drop every cached lookup result. Rate-limit windows are left untouched."""
    removed = resolver.clear_cache()
    return ClearCacheResponse(removed=removed, message=f"Cleared {removed} cached entries.")


@app.get(
    "/v1/ip/{ip}",
    response_model=IPLookupResponse,
    status_code=status.HTTP_200_OK,
    tags=["ip"],
    summary="Look up geolocation information for the IP given in the path.",
)
async def ip_lookup_by_path(
    request: Request,
    ip: str,
    resolver: Annotated[GeoResolver, Depends(get_resolver)],
) -> IPLookupResponse:
    """Look up geolocation information for the IP in the path.

    Malformed addresses raise ValidationError, which is mapped to a 400 `invalid_ip` response.
    """
    lookup = IPLookupRequest(ip=ip)
    logger.info(f"Performing explicit IP lookup path={request.url.path} method={request.method} ip={lookup.ip}")
    return await _resolve(request, resolver, lookup.ip or ip)
