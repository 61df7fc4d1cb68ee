from enum import Enum, IntFlag

from pydantic import BaseModel, ConfigDict, Field

CANONICAL_FIELDS: tuple[str, ...] = (
    "error_message",
    "country_code",
    "country_name",
    "region_name",
    "city_name",
    "latitude",
    "longitude",
)

UNKNOWN_COUNTRY_CODE = "ZZ"


class IpFamily(IntFlag):
    """Address families a provider can handle."""

    IPV4 = 1
    IPV6 = 2
    BOTH = 3


class Hook(str, Enum):
    """Context a lookup was made in.

    Only `public` lookups take part in the session based view counting of the cache.
    """

    public = "public"
    admin = "admin"
    login = "login"
    comment = "comment"
    xmlrpc = "xmlrpc"


class CanonicalLocation(BaseModel):
    """Normalized geolocation data returned by an IP provider.

    Every provider response is projected into this shape. A location carrying an
    `error_message` means the provider failed and the caller should try the next one.
    Coordinates are kept as the strings the provider sent.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    error_message: str | None = Field(default=None, alias="errorMessage")
    country_code: str | None = Field(default=None, alias="countryCode")
    country_name: str | None = Field(default=None, alias="countryName")
    region_name: str | None = Field(default=None, alias="regionName")
    city_name: str | None = Field(default=None, alias="cityName")
    latitude: str | None = None
    longitude: str | None = None

    @property
    def is_error(self) -> bool:
        return self.error_message is not None

    @classmethod
    def error(cls, message: str) -> "CanonicalLocation":
        return cls(error_message=message)
