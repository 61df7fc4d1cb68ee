import pytest

from iplocate.cache.ip_cache import IpCache
from iplocate.cache.store import InMemoryCacheStore
from iplocate.clients.base import BaseProviderClient
from iplocate.clients.cache_client import CacheClient
from iplocate.errors import FamilyMismatchError, InvalidIpError, UnknownProviderError
from iplocate.models.common import CanonicalLocation
from iplocate.providers import CACHE_PROVIDER, ProviderRegistry
from iplocate.registry import InstanceRegistry
from iplocate.resolver import LocationResolver
from iplocate.settings import Settings
from tests.common import StubClient, make_settings


def _resolver(
    clients: dict[str, BaseProviderClient], settings: Settings | None = None
) -> tuple[LocationResolver, IpCache]:
    settings = settings or make_settings(restrict_api=True, cache_hold=False)
    cache = IpCache(InMemoryCacheStore())
    providers = ProviderRegistry()
    instances = InstanceRegistry({})
    for name, client in clients.items():
        providers.register_addon(name)
        instances.register(name, lambda api_key, client=client: client)
    return LocationResolver(settings, providers, instances, cache), cache


@pytest.mark.asyncio
async def test_first_successful_provider_wins_and_stops_iteration() -> None:
    alpha = StubClient(CanonicalLocation.error("HTTP 503"))
    beta = StubClient(CanonicalLocation(country_code="SE", city_name="Stockholm"))
    gamma = StubClient(CanonicalLocation(country_code="NO"))
    resolver, cache = _resolver({"Alpha": alpha, "Beta": beta, "Gamma": gamma})

    resolution = await resolver.resolve("8.8.8.8")

    assert resolution.resolved
    assert resolution.provider == "Beta"
    assert resolution.location.city_name == "Stockholm"
    assert resolution.attempts == {"Alpha": "HTTP 503"}
    assert gamma.calls == []
    assert resolution.record.country_code == "SE"
    assert (await cache.get("8.8.8.8")).country_code == "SE"


@pytest.mark.asyncio
async def test_family_mismatch_and_missing_country_are_skipped() -> None:
    alpha = StubClient(FamilyMismatchError("IPV6 address not supported"))
    beta = StubClient(CanonicalLocation(city_name="Nowhere"))
    gamma = StubClient(CanonicalLocation(country_code="CA"))
    resolver, _ = _resolver({"Alpha": alpha, "Beta": beta, "Gamma": gamma})

    resolution = await resolver.resolve("2001:db8::1")

    assert resolution.provider == "Gamma"
    assert resolution.attempts == {
        "Alpha": "IPV6 address not supported",
        "Beta": "no country code in response",
    }


@pytest.mark.asyncio
async def test_concurrent_mode_queries_all_and_keeps_priority() -> None:
    alpha = StubClient(CanonicalLocation.error("timeout"))
    beta = StubClient(CanonicalLocation(country_code="BR"))
    gamma = StubClient(CanonicalLocation(country_code="AR"))
    resolver, _ = _resolver({"Alpha": alpha, "Beta": beta, "Gamma": gamma})

    resolution = await resolver.resolve("8.8.8.8", concurrent=True)

    assert resolution.provider == "Beta"
    assert resolution.location.country_code == "BR"
    assert alpha.calls == beta.calls == gamma.calls == ["8.8.8.8"]


@pytest.mark.asyncio
async def test_exhausted_providers_give_unknown_location_without_caching() -> None:
    alpha = StubClient(CanonicalLocation.error("unsupported content type: octet-stream"))
    beta = StubClient(CanonicalLocation.error("Request to IP provider failed"))
    resolver, cache = _resolver({"Alpha": alpha, "Beta": beta})

    resolution = await resolver.resolve("8.8.8.8")

    assert not resolution.resolved
    assert resolution.provider is None
    assert resolution.record is None
    assert resolution.location.country_code == "ZZ"
    assert set(resolution.attempts) == {"Alpha", "Beta"}
    assert await cache.get("8.8.8.8") is None
    assert len(cache) == 0


@pytest.mark.asyncio
async def test_provider_answering_unknown_country_is_not_a_success() -> None:
    alpha = StubClient(CanonicalLocation(country_code="ZZ"))
    beta = StubClient(CanonicalLocation(country_code="DK"))
    resolver, _ = _resolver({"Alpha": alpha, "Beta": beta})

    resolution = await resolver.resolve("8.8.8.8")

    assert resolution.provider == "Beta"
    assert resolution.attempts == {"Alpha": "unknown country in response"}


@pytest.mark.asyncio
async def test_recovered_provider_is_asked_again_after_outage() -> None:
    remote = StubClient(CanonicalLocation.error("Request to IP provider failed"))
    settings = make_settings(restrict_api=True, cache_hold=True)
    cache = IpCache(InMemoryCacheStore())
    instances = InstanceRegistry({CACHE_PROVIDER: lambda api_key: CacheClient(cache)})
    resolver = LocationResolver(settings, ProviderRegistry(), instances, cache)
    resolver.register_addon("Remote", lambda api_key: remote)

    outage = await resolver.resolve("9.9.9.9")
    assert not outage.resolved
    assert await cache.get("9.9.9.9") is None

    remote.answer = CanonicalLocation(country_code="PT")
    recovered = await resolver.resolve("9.9.9.9")

    assert recovered.resolved
    assert recovered.provider == "Remote"
    assert recovered.attempts == {CACHE_PROVIDER: "not in the cache"}
    assert remote.calls == ["9.9.9.9", "9.9.9.9"]
    assert (await cache.get("9.9.9.9")).country_code == "PT"


@pytest.mark.asyncio
@pytest.mark.parametrize("concurrent", [False, True])
async def test_provider_raising_is_skipped(concurrent: bool) -> None:
    alpha = StubClient(RuntimeError("addon crashed"))
    beta = StubClient(CanonicalLocation(country_code="IS"))
    resolver, _ = _resolver({"Alpha": alpha, "Beta": beta})

    resolution = await resolver.resolve("8.8.8.8", concurrent=concurrent)

    assert resolution.provider == "Beta"
    assert resolution.location.country_code == "IS"
    assert "addon crashed" in resolution.attempts["Alpha"]


@pytest.mark.asyncio
async def test_no_eligible_provider_is_not_an_error() -> None:
    resolver, cache = _resolver({}, make_settings(restrict_api=True, cache_hold=False))

    resolution = await resolver.resolve("8.8.8.8")

    assert not resolution.resolved
    assert resolution.record is None
    assert resolution.location.country_code == "ZZ"
    assert "No IP geolocation provider" in resolution.location.error_message
    assert len(cache) == 0


@pytest.mark.asyncio
async def test_explicit_provider() -> None:
    alpha = StubClient(CanonicalLocation(country_code="FI"))
    beta = StubClient(CanonicalLocation(country_code="EE"))
    resolver, _ = _resolver({"Alpha": alpha, "Beta": beta})

    resolution = await resolver.resolve("8.8.8.8", provider="Beta")

    assert resolution.provider == "Beta"
    assert alpha.calls == []

    with pytest.raises(UnknownProviderError):
        await resolver.resolve("8.8.8.8", provider="Nope")


@pytest.mark.asyncio
async def test_invalid_ip_raises() -> None:
    resolver, _ = _resolver({"Alpha": StubClient(CanonicalLocation(country_code="FI"))})

    with pytest.raises(InvalidIpError):
        await resolver.resolve("not-an-ip")


@pytest.mark.asyncio
async def test_second_lookup_is_answered_from_cache() -> None:
    remote = StubClient(CanonicalLocation(country_code="PT"))
    settings = make_settings(restrict_api=True, cache_hold=True)
    cache = IpCache(InMemoryCacheStore())
    providers = ProviderRegistry()
    instances = InstanceRegistry({CACHE_PROVIDER: lambda api_key: CacheClient(cache)})
    resolver = LocationResolver(settings, providers, instances, cache)
    resolver.register_addon("Remote", lambda api_key: remote)

    first = await resolver.resolve("9.9.9.9")
    second = await resolver.resolve("9.9.9.9")

    assert first.provider == "Remote"
    assert second.provider == CACHE_PROVIDER
    assert second.location.country_code == "PT"
    assert remote.calls == ["9.9.9.9"]
    assert second.record.request_count == 2
    assert second.record.view_count == 2
