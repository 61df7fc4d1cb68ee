import random

from pydantic import BaseModel, ConfigDict

from iplocate.settings import Settings

CACHE_PROVIDER = "Cache"


class ProviderInfo(BaseModel):
    """Registry entry describing one provider."""

    model_config = ConfigDict(frozen=True)

    name: str
    requires_api_key: bool = False
    description: str = ""


BUILTIN_PROVIDERS: tuple[ProviderInfo, ...] = (
    ProviderInfo(name="IP-API.com", description="IPv4, IPv6 / free for non-commercial use"),
    ProviderInfo(name="GeoIPLookup", description="IPv4, IPv6 / free"),
    ProviderInfo(name="ipinfo.io", requires_api_key=True, description="IPv4, IPv6 / free up to 1,000 lookups daily"),
    ProviderInfo(
        name="ipapi",
        requires_api_key=True,
        description="IPv4, IPv6 / free up to 10,000 lookups monthly for registered user",
    ),
    ProviderInfo(name="Ipdata.co", requires_api_key=True, description="IPv4, IPv6 / free up to 1,500 lookups daily"),
    ProviderInfo(name="ipstack", requires_api_key=True, description="IPv4, IPv6 / free for registered user"),
    ProviderInfo(name="IPInfoDB", requires_api_key=True, description="IPv4, IPv6 / free for registered user"),
)


class ProviderRegistry:
    """Built-in remote providers plus internal/addon providers, and the selection policy over them.

    Addons keep their registration order and are always queried before the built-in
    providers, whose order can be shuffled to spread load across rate limited free tiers.
    """

    def __init__(self, rng: random.Random | None = None) -> None:
        self._rng = rng or random.Random()
        self._builtins: dict[str, ProviderInfo] = {info.name: info for info in BUILTIN_PROVIDERS}
        self._internals: dict[str, ProviderInfo] = {
            CACHE_PROVIDER: ProviderInfo(name=CACHE_PROVIDER, description="IPv4, IPv6"),
        }

    def register_addon(self, name: str, info: ProviderInfo | None = None) -> None:
        """Add an addon provider; an already registered name is left untouched."""
        if name in self._internals:
            return
        self._internals[name] = info or ProviderInfo(name=name)

    def get(self, name: str) -> ProviderInfo | None:
        return self._internals.get(name) or self._builtins.get(name)

    def get_addons(self, providers: dict[str, str | bool] | None = None, force: bool = False) -> list[str]:
        """Names of the addon providers that are not explicitly deselected (all of them with `force`)."""
        providers = providers or {}
        return [
            name
            for name in self._internals
            if name != CACHE_PROVIDER and (force or name not in providers or providers[name])
        ]

    def get_providers(
        self, randomize: bool = False, include_cache: bool = False, include_all: bool = True
    ) -> list[ProviderInfo]:
        """Candidate providers in query order: internals first, then built-ins."""
        candidates = [
            info for name, info in self._internals.items() if name != CACHE_PROVIDER or include_cache
        ]
        if include_all:
            builtins = list(self._builtins.values())
            if randomize:
                self._rng.shuffle(builtins)
            candidates.extend(builtins)
        return candidates

    def eligible_providers(
        self,
        settings: Settings,
        randomize: bool = True,
        include_cache: bool = True,
        include_all: bool = False,
    ) -> list[str]:
        """Names of the providers to query, in order.

        A provider qualifies when it has a configured (truthy) entry in `settings.providers`,
        or when it needs no API key and has no entry at all. An explicit falsy entry
        deselects it. The Cache pseudo-provider only qualifies when caching is enabled.
        """
        configured = settings.providers
        candidates = self.get_providers(
            randomize=randomize,
            include_cache=include_cache and settings.cache_hold,
            include_all=not settings.restrict_api or include_all,
        )
        return [
            info.name
            for info in candidates
            if configured.get(info.name) or (info.name not in configured and not info.requires_api_key)
        ]
