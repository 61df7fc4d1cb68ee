import re
import threading
from collections.abc import Callable
from enum import Enum

from iplocate.cache.ip_cache import IpCache
from iplocate.clients.base import BaseProviderClient
from iplocate.clients.cache_client import CacheClient
from iplocate.clients.geoiplookup_client import GeoIpLookup
from iplocate.clients.ip_api_com_client import IpApiCom
from iplocate.clients.ipapi_client import Ipapi
from iplocate.clients.ipdata_client import IpdataCo
from iplocate.clients.ipinfo_client import IpInfoIo
from iplocate.clients.ipinfodb_client import IpInfoDb
from iplocate.clients.ipstack_client import Ipstack
from iplocate.logger import logger
from iplocate.settings import Settings

ClientFactory = Callable[[str | None], BaseProviderClient]


class ProviderKind(str, Enum):
    """Client identities: provider display names with non-word characters removed."""

    ip_api_com = "IPAPIcom"
    geoiplookup = "GeoIPLookup"
    ipinfo_io = "ipinfoio"
    ipapi = "ipapi"
    ipdata_co = "Ipdataco"
    ipstack = "ipstack"
    ipinfodb = "IPInfoDB"
    cache = "Cache"


def provider_identity(name: str) -> str:
    """`IP-API.com` -> `IPAPIcom`."""
    return re.sub(r"\W", "", name)


def get_api_key(name: str, settings: Settings) -> str | None:
    """Return the API key configured for `name`, matching provider names case-insensitively."""
    providers = {key.lower(): value for key, value in settings.providers.items()}
    value = providers.get(name.lower())
    return value if isinstance(value, str) and value else None


class InstanceRegistry:
    """Creates and keeps one client instance per provider for the lifetime of the process."""

    def __init__(self, factories: dict[str, ClientFactory]) -> None:
        self._factories = dict(factories)
        self._instances: dict[str, BaseProviderClient] = {}
        self._lock = threading.Lock()

    def register(self, identity: str, factory: ClientFactory) -> None:
        """Add a client factory for an addon provider."""
        with self._lock:
            self._factories[provider_identity(identity)] = factory

    def resolve_identity(self, name: str) -> str | None:
        identity = provider_identity(name)
        return identity if identity in self._factories else None

    def get_instance(self, name: str, settings: Settings) -> BaseProviderClient | None:
        """Return the client for the provider display name `name`, None for unknown providers."""
        identity = self.resolve_identity(name)
        if identity is None:
            return None

        instance = self._instances.get(identity)
        if instance is not None:
            return instance

        with self._lock:
            instance = self._instances.get(identity)
            if instance is None:
                instance = self._factories[identity](get_api_key(name, settings))
                self._instances[identity] = instance
                logger.debug(f"Created IP provider client provider={name} identity={identity}")
        return instance


def build_instance_registry(cache: IpCache, timeout_seconds: float = 5.0) -> InstanceRegistry:
    """Registry wired with every built-in client and the cache pseudo-provider."""
    remote: dict[ProviderKind, type[BaseProviderClient]] = {
        ProviderKind.ip_api_com: IpApiCom,
        ProviderKind.geoiplookup: GeoIpLookup,
        ProviderKind.ipinfo_io: IpInfoIo,
        ProviderKind.ipapi: Ipapi,
        ProviderKind.ipdata_co: IpdataCo,
        ProviderKind.ipstack: Ipstack,
        ProviderKind.ipinfodb: IpInfoDb,
    }

    def _remote_factory(client_cls: type[BaseProviderClient]) -> ClientFactory:
        return lambda api_key: client_cls(api_key=api_key, timeout_seconds=timeout_seconds)

    factories: dict[str, ClientFactory] = {kind.value: _remote_factory(cls) for kind, cls in remote.items()}
    factories[ProviderKind.cache.value] = lambda api_key: CacheClient(cache, api_key, timeout_seconds)
    return InstanceRegistry(factories)
