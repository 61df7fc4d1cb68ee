import asyncio
from typing import Any

from pydantic import BaseModel, Field

from iplocate.cache.ip_cache import IpCache
from iplocate.clients.base import BaseProviderClient
from iplocate.clients.template import family_of
from iplocate.errors import FamilyMismatchError, NoEligibleProviderError, UnknownProviderError
from iplocate.logger import logger
from iplocate.models.cache import CacheRecord, ValidationResult
from iplocate.models.common import UNKNOWN_COUNTRY_CODE, CanonicalLocation, Hook
from iplocate.providers import ProviderInfo, ProviderRegistry
from iplocate.registry import ClientFactory, InstanceRegistry
from iplocate.settings import Settings


class Resolution(BaseModel):
    """Outcome of resolving one IP address across the eligible providers."""

    ip: str
    provider: str | None = None
    location: CanonicalLocation
    record: CacheRecord | None = None
    # Provider name -> reason it was skipped.
    attempts: dict[str, str] = Field(default_factory=dict)

    @property
    def resolved(self) -> bool:
        return self.provider is not None and self.location.country_code not in (None, UNKNOWN_COUNTRY_CODE)


def _is_success(location: CanonicalLocation) -> bool:
    return not location.is_error and location.country_code not in (None, UNKNOWN_COUNTRY_CODE)


class LocationResolver:
    """Resolves an IP address by querying providers in priority order and caching the answer.

    A failing provider never fails the resolution: it is skipped and the next one is
    tried. When every provider fails the location is unknown (`ZZ`) and nothing is
    cached, so the next lookup asks the providers again.
    """

    def __init__(
        self,
        settings: Settings,
        providers: ProviderRegistry,
        instances: InstanceRegistry,
        cache: IpCache,
    ) -> None:
        self._settings = settings
        self._providers = providers
        self._instances = instances
        self._cache = cache

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def cache(self) -> IpCache:
        return self._cache

    def register_addon(self, name: str, factory: ClientFactory, info: ProviderInfo | None = None) -> None:
        """Extend the provider pool with an addon client."""
        self._providers.register_addon(name, info)
        self._instances.register(name, factory)

    def candidates(self, provider: str | None = None) -> list[str]:
        """Provider names to query, in order."""
        if provider is not None:
            if self._instances.resolve_identity(provider) is None:
                raise UnknownProviderError(f"Unknown IP geolocation provider: {provider}")
            return [provider]

        names = self._providers.eligible_providers(self._settings, randomize=self._settings.randomize_providers)
        if not names:
            raise NoEligibleProviderError("No IP geolocation provider is configured.")
        return names

    def provider_info(self) -> list[ProviderInfo]:
        eligible = self._providers.eligible_providers(self._settings, randomize=False)
        return [info for name in eligible if (info := self._providers.get(name)) is not None]

    async def resolve(
        self,
        ip: str,
        hook: Hook | str = Hook.public,
        authenticated: bool = False,
        provider: str | None = None,
        concurrent: bool = False,
        request_args: dict[str, Any] | None = None,
        fail: int | None = None,
        count_up: bool = True,
    ) -> Resolution:
        """Resolve `ip` and record the visit in the cache.

        With `concurrent=True` all providers are queried at once and the first success
        in priority order wins. `fail` is the number of failed attempts (e.g. logins)
        seen from this IP; None keeps the cached count.
        """
        family_of(ip)
        try:
            names = self.candidates(provider)
        except NoEligibleProviderError as exc:
            logger.warning(f"No eligible IP provider ip={ip}")
            unknown = CanonicalLocation(error_message=str(exc), country_code=UNKNOWN_COUNTRY_CODE)
            return Resolution(ip=ip, location=unknown)

        if concurrent:
            outcomes = await asyncio.gather(*(self._query(name, ip, request_args) for name in names))
        else:
            outcomes = []
            for name in names:
                outcome = await self._query(name, ip, request_args)
                outcomes.append(outcome)
                if _is_success(outcome[1]):
                    break

        attempts: dict[str, str] = {}
        for name, location in outcomes:
            if _is_success(location):
                record = await self._remember(ip, location, hook, authenticated, fail, count_up)
                logger.info(f"Resolved IP ip={ip} provider={name} country={location.country_code}")
                return Resolution(ip=ip, provider=name, location=location, record=record, attempts=attempts)
            attempts[name] = location.error_message or (
                "unknown country in response"
                if location.country_code == UNKNOWN_COUNTRY_CODE
                else "no country code in response"
            )

        logger.warning(f"Could not resolve IP ip={ip} attempts={attempts}")
        return Resolution(ip=ip, location=CanonicalLocation(country_code=UNKNOWN_COUNTRY_CODE), attempts=attempts)

    async def _query(
        self, name: str, ip: str, request_args: dict[str, Any] | None
    ) -> tuple[str, CanonicalLocation]:
        client: BaseProviderClient | None = self._instances.get_instance(name, self._settings)
        if client is None:
            return name, CanonicalLocation.error(f"no client for provider {name}")

        try:
            location = await client.lookup(ip, request_args)
        except FamilyMismatchError as exc:
            logger.debug(f"Skipping IP provider provider={name} ip={ip} reason={exc}")
            return name, CanonicalLocation.error(str(exc))
        except Exception as exc:
            logger.exception(f"IP provider lookup raised provider={name} ip={ip}")
            return name, CanonicalLocation.error(f"provider raised {exc!r}")

        if location.is_error:
            logger.info(f"IP provider returned an error provider={name} ip={ip} error={location.error_message}")
        return name, location

    async def _remember(
        self,
        ip: str,
        location: CanonicalLocation,
        hook: Hook | str,
        authenticated: bool,
        fail: int | None,
        count_up: bool,
    ) -> CacheRecord:
        validation = ValidationResult(
            ip=ip,
            country_code=location.country_code,
            authenticated=authenticated,
            fail=fail,
        )
        return await self._cache.upsert(hook, validation, self._settings, count_up=count_up)
