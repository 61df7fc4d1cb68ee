from functools import lru_cache
from typing import Annotated

from fastapi import Depends, FastAPI, HTTPException, Request, status
from pydantic import ValidationError

from iplocate.cache.ip_cache import IpCache
from iplocate.cache.store import create_cache_store
from iplocate.errors import InvalidIpError, IpProviderError, UnknownProviderError
from iplocate.exception_handlers import (
    provider_exception_handler,
    pydantic_validation_exception_handler,
    unhandled_exception_handler,
)
from iplocate.logger import logger
from iplocate.models.cache import CacheRecord
from iplocate.models.request_models import IPLookupRequest
from iplocate.models.response_models import (
    CacheClearedResponse,
    HealthResponse,
    IPLookupResponse,
    ProviderResponse,
    ProvidersResponse,
)
from iplocate.providers import ProviderRegistry
from iplocate.registry import build_instance_registry
from iplocate.resolver import LocationResolver
from iplocate.settings import get_settings

app = FastAPI(
    title="IP Geolocation Service",
    version="0.2.0",
    description="Resolves the country, region, city and coordinates of an IP address across several providers.",
)
logger.info("Started IP Geolocation Service")


@lru_cache
def get_resolver() -> LocationResolver:
    """Dependency providing the process wide resolver, built on first use."""
    settings = get_settings()
    cache = IpCache(create_cache_store(settings.cache_database_url))
    instances = build_instance_registry(cache, timeout_seconds=settings.timeout_seconds)
    return LocationResolver(settings, ProviderRegistry(), instances, cache)


app.add_exception_handler(ValidationError, pydantic_validation_exception_handler)
app.add_exception_handler(IpProviderError, provider_exception_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)


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
    "/v1/ip/lookup",
    response_model=IPLookupResponse,
    status_code=status.HTTP_200_OK,
    tags=["ip"],
    summary="Look up geolocation information for an IP address.",
)
async def ip_lookup(
    request: Request,
    query: Annotated[IPLookupRequest, Depends()],
    resolver: Annotated[LocationResolver, Depends(get_resolver)],
) -> IPLookupResponse:
    """Look up geolocation information for either a specific IP or the caller's IP.

    - If `query.ip` is provided, that IP is used, otherwise the client's address.
    - If `query.provider` is provided only that provider is asked, otherwise every
      eligible provider is tried in turn.
    """
    provider = query.provider
    ip = query.ip or (request.client.host if request.client else None)
    if not ip:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"code": "invalid_ip", "message": "Could not determine the client IP address.", "provider": provider},
        )

    logger.info(
        "Performing IP lookup "
        f"path={request.url.path} method={request.method} ip={ip} provider={provider} hook={query.hook.value}"
    )

    try:
        resolution = await resolver.resolve(ip, hook=query.hook, provider=provider)
    except InvalidIpError as exc:
        logger.error(f"Invalid IP error during lookup path={request.url.path} ip={ip} error={exc}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"code": "invalid_ip", "message": str(exc), "provider": provider},
        ) from exc
    except UnknownProviderError as exc:
        logger.error(f"Unknown provider requested path={request.url.path} ip={ip} provider={provider}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"code": "unknown_provider", "message": str(exc), "provider": provider},
        ) from exc

    if not resolution.resolved:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={
                "code": "location_unknown",
                "message": resolution.location.error_message or "No provider could locate this IP address.",
                "provider": provider,
                "attempts": resolution.attempts,
            },
        )

    location = resolution.location
    return IPLookupResponse(
        provider=resolution.provider,
        ip=resolution.ip,
        country_code=location.country_code,
        country_name=location.country_name,
        region_name=location.region_name,
        city_name=location.city_name,
        latitude=location.latitude,
        longitude=location.longitude,
        cache=resolution.record,
    )


@app.get(
    "/v1/providers",
    response_model=ProvidersResponse,
    tags=["providers"],
    summary="List the providers queried with the current settings.",
)
async def list_providers(
    resolver: Annotated[LocationResolver, Depends(get_resolver)],
) -> ProvidersResponse:
    return ProvidersResponse(
        providers=[
            ProviderResponse(name=info.name, requires_api_key=info.requires_api_key, description=info.description)
            for info in resolver.provider_info()
        ]
    )


@app.get(
    "/v1/cache/{ip}",
    response_model=CacheRecord,
    tags=["cache"],
    summary="Return the cached record of an IP address.",
)
async def get_cache_record(
    ip: str,
    resolver: Annotated[LocationResolver, Depends(get_resolver)],
) -> CacheRecord:
    record = await resolver.cache.get(ip, read_through=resolver.settings.cache_hold)
    if record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"code": "not_cached", "message": f"{ip} is not in the cache."},
        )
    return record


@app.delete(
    "/v1/cache",
    response_model=CacheClearedResponse,
    tags=["cache"],
    summary="Drop every cached IP address.",
)
async def clear_cache(
    resolver: Annotated[LocationResolver, Depends(get_resolver)],
) -> CacheClearedResponse:
    await resolver.cache.clear()
    return CacheClearedResponse(status="cleared")
