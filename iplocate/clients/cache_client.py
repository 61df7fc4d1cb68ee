from typing import Any

from iplocate.cache.ip_cache import IpCache
from iplocate.clients.base import BaseProviderClient
from iplocate.clients.template import ProviderTemplate, family_of
from iplocate.models.cache import CacheRecord
from iplocate.models.common import UNKNOWN_COUNTRY_CODE, CanonicalLocation, IpFamily


class CacheClient(BaseProviderClient):
    """Pseudo-provider answering from the IP cache instead of a remote service.

    It lets the resolver treat "check the cache" like any other provider in the list.
    A cached unknown country (`ZZ`) counts as a miss so the remote providers are asked again.
    """

    name = "Cache"
    template = ProviderTemplate(supported_families=IpFamily.BOTH, url_pattern="cache://{ip}")

    def __init__(self, cache: IpCache, api_key: str | None = None, timeout_seconds: float = 5.0) -> None:
        super().__init__(api_key, timeout_seconds)
        self._cache = cache

    async def lookup(self, ip: str, request_args: dict[str, Any] | None = None) -> CanonicalLocation:
        family_of(ip)
        record = await self._known(ip)
        if record is None:
            return CanonicalLocation.error("not in the cache")
        return CanonicalLocation(country_code=record.country_code)

    async def lookup_country_only(self, ip: str, request_args: dict[str, Any] | None = None) -> str | None:
        record = await self._known(ip)
        return record.country_code if record else None

    async def _known(self, ip: str) -> CacheRecord | None:
        record = await self._cache.get(ip)
        if record is None or record.country_code == UNKNOWN_COUNTRY_CODE:
            return None
        return record
