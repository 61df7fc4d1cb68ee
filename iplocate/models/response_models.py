from pydantic import BaseModel

from iplocate.models.cache import CacheRecord


class HealthResponse(BaseModel):
    """Response model for the health check endpoint."""

    status: str


class IPLookupResponse(BaseModel):
    """Response model for IP geolocation lookup."""

    provider: str
    ip: str
    country_code: str
    country_name: str | None = None
    region_name: str | None = None
    city_name: str | None = None
    latitude: str | None = None
    longitude: str | None = None
    cache: CacheRecord | None = None


class ProviderResponse(BaseModel):
    """One provider the service currently queries."""

    name: str
    requires_api_key: bool
    description: str


class ProvidersResponse(BaseModel):
    providers: list[ProviderResponse]


class CacheClearedResponse(BaseModel):
    status: str
