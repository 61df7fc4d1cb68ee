import random
import threading
import time
from concurrent.futures import ThreadPoolExecutor

from iplocate.cache.ip_cache import IpCache
from iplocate.cache.store import InMemoryCacheStore
from iplocate.clients.base import BaseProviderClient
from iplocate.clients.cache_client import CacheClient
from iplocate.clients.ip_api_com_client import IpApiCom
from iplocate.clients.ipinfo_client import IpInfoIo
from iplocate.providers import BUILTIN_PROVIDERS, CACHE_PROVIDER, ProviderInfo, ProviderRegistry
from iplocate.registry import InstanceRegistry, build_instance_registry, get_api_key, provider_identity
from tests.common import make_settings


def _registry() -> InstanceRegistry:
    return build_instance_registry(IpCache(InMemoryCacheStore()), timeout_seconds=2.0)


def test_provider_identity_strips_non_word_characters() -> None:
    assert provider_identity("IP-API.com") == "IPAPIcom"
    assert provider_identity("ipinfo.io") == "ipinfoio"
    assert provider_identity("Ipdata.co") == "Ipdataco"


def test_every_builtin_provider_has_a_client() -> None:
    registry = _registry()
    settings = make_settings()

    for info in BUILTIN_PROVIDERS:
        assert isinstance(registry.get_instance(info.name, settings), BaseProviderClient), info.name
    assert isinstance(registry.get_instance(CACHE_PROVIDER, settings), CacheClient)


def test_unknown_provider_yields_none() -> None:
    assert _registry().get_instance("NoSuchProvider", make_settings()) is None


def test_api_key_is_matched_case_insensitively() -> None:
    settings = make_settings(providers={"IPINFO.IO": "token-1", "GeoIPLookup": True})

    assert get_api_key("ipinfo.io", settings) == "token-1"
    assert get_api_key("GeoIPLookup", settings) is None
    assert get_api_key("ipstack", settings) is None

    client = _registry().get_instance("ipinfo.io", settings)
    assert isinstance(client, IpInfoIo)
    assert client.api_key == "token-1"


def test_instances_are_memoized() -> None:
    registry = _registry()
    settings = make_settings()

    first = registry.get_instance("IP-API.com", settings)
    assert isinstance(first, IpApiCom)
    assert registry.get_instance("IP-API.com", settings) is first


def test_concurrent_first_access_constructs_once() -> None:
    constructed: list[BaseProviderClient] = []
    barrier = threading.Barrier(8)

    def _slow_factory(api_key: str | None) -> BaseProviderClient:
        time.sleep(0.01)
        client = IpApiCom(api_key)
        constructed.append(client)
        return client

    registry = InstanceRegistry({"IPAPIcom": _slow_factory})
    settings = make_settings()

    def _get(_: int) -> BaseProviderClient | None:
        barrier.wait()
        return registry.get_instance("IP-API.com", settings)

    with ThreadPoolExecutor(max_workers=8) as pool:
        instances = list(pool.map(_get, range(8)))

    assert len(constructed) == 1
    assert all(instance is constructed[0] for instance in instances)


def test_register_addon_factory() -> None:
    registry = _registry()
    registry.register("My Addon", lambda api_key: IpApiCom(api_key))

    assert registry.resolve_identity("My Addon") == "MyAddon"
    assert isinstance(registry.get_instance("My Addon", make_settings()), IpApiCom)


def test_eligible_providers_without_configuration_and_restricted_api() -> None:
    registry = ProviderRegistry()

    assert registry.eligible_providers(make_settings(restrict_api=True, cache_hold=False)) == []
    assert registry.eligible_providers(make_settings(restrict_api=True, cache_hold=True)) == [CACHE_PROVIDER]


def test_eligible_providers_default_selection() -> None:
    registry = ProviderRegistry()
    settings = make_settings(providers={"ipinfo.io": "token", "GeoIPLookup": False, "ipstack": ""})

    names = registry.eligible_providers(settings, randomize=False)

    assert names == [CACHE_PROVIDER, "IP-API.com", "ipinfo.io"]


def test_eligible_providers_can_exclude_cache() -> None:
    registry = ProviderRegistry()

    names = registry.eligible_providers(make_settings(), randomize=False, include_cache=False)

    assert CACHE_PROVIDER not in names
    assert names == ["IP-API.com", "GeoIPLookup"]


def test_restrict_api_keeps_only_addons_unless_include_all() -> None:
    registry = ProviderRegistry()
    registry.register_addon("Maxmind", ProviderInfo(name="Maxmind", description="local database"))
    settings = make_settings(restrict_api=True, cache_hold=False)

    assert registry.eligible_providers(settings) == ["Maxmind"]
    assert registry.eligible_providers(settings, randomize=False, include_all=True) == [
        "Maxmind",
        "IP-API.com",
        "GeoIPLookup",
    ]


def test_randomized_order_keeps_addons_first() -> None:
    registry = ProviderRegistry(rng=random.Random(7))
    registry.register_addon("Geoip2")
    registry.register_addon("Maxmind")
    providers = {info.name: "key" for info in BUILTIN_PROVIDERS}
    settings = make_settings(providers=providers)

    orders = {tuple(registry.eligible_providers(settings, randomize=True)) for _ in range(20)}

    assert len(orders) > 1
    for order in orders:
        assert order[:3] == (CACHE_PROVIDER, "Geoip2", "Maxmind")
        assert sorted(order[3:]) == sorted(info.name for info in BUILTIN_PROVIDERS)


def test_register_addon_does_not_replace_existing() -> None:
    registry = ProviderRegistry()
    registry.register_addon("Maxmind", ProviderInfo(name="Maxmind", description="first"))
    registry.register_addon("Maxmind", ProviderInfo(name="Maxmind", description="second"))

    assert registry.get("Maxmind").description == "first"


def test_get_addons_excludes_cache_and_deselected() -> None:
    registry = ProviderRegistry()
    registry.register_addon("Maxmind")
    registry.register_addon("IP2Location")

    assert registry.get_addons() == ["Maxmind", "IP2Location"]
    assert registry.get_addons({"Maxmind": False}) == ["IP2Location"]
    assert registry.get_addons({"Maxmind": False}, force=True) == ["Maxmind", "IP2Location"]
