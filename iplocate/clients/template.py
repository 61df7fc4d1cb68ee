from ipaddress import ip_address

from pydantic import BaseModel, ConfigDict, field_validator

from iplocate.errors import InvalidIpError
from iplocate.models.common import CANONICAL_FIELDS, IpFamily

PLACEHOLDERS: tuple[str, ...] = ("api_key", "format", "option")


class ProviderTemplate(BaseModel):
    """Declarative description of one upstream geolocation service.

    `url_pattern` contains `{ip}` and optionally `{api_key}`, `{format}` and `{option}`
    placeholders. `field_map` maps canonical field names to the keys the provider
    uses in its payload.
    """

    model_config = ConfigDict(frozen=True)

    supported_families: IpFamily = IpFamily.BOTH
    url_pattern: str
    placeholders: dict[str, str] = {}
    field_map: dict[str, str] = {}

    @field_validator("url_pattern")
    @classmethod
    def _require_ip_placeholder(cls, value: str) -> str:
        if "{ip}" not in value:
            raise ValueError("url_pattern must contain the {ip} placeholder")
        return value

    @field_validator("placeholders")
    @classmethod
    def _check_placeholder_names(cls, value: dict[str, str]) -> dict[str, str]:
        unknown = set(value) - set(PLACEHOLDERS)
        if unknown:
            raise ValueError(f"unknown placeholders: {sorted(unknown)}")
        return value

    @field_validator("field_map")
    @classmethod
    def _check_canonical_fields(cls, value: dict[str, str]) -> dict[str, str]:
        unknown = set(value) - set(CANONICAL_FIELDS)
        if unknown:
            raise ValueError(f"field_map contains non canonical fields: {sorted(unknown)}")
        return value

    def with_placeholders(self, **values: str) -> "ProviderTemplate":
        """Return a copy of the template with some placeholder defaults replaced."""
        unknown = set(values) - set(PLACEHOLDERS)
        if unknown:
            raise ValueError(f"unknown placeholders: {sorted(unknown)}")
        return self.model_copy(update={"placeholders": {**self.placeholders, **values}})

    def supports(self, family: IpFamily) -> bool:
        return bool(self.supported_families & family)


def family_of(ip: str) -> IpFamily:
    """Return the address family of `ip`, raising InvalidIpError for anything else."""
    try:
        address = ip_address(ip.strip())
    except ValueError as exc:
        raise InvalidIpError(f"{ip!r} is not a valid IPv4 or IPv6 address") from exc
    return IpFamily.IPV4 if address.version == 4 else IpFamily.IPV6


def build_url(ip: str, template: ProviderTemplate) -> str:
    """Substitute the IP and the template's placeholder values into its URL pattern.

    Placeholders without a value are replaced with an empty string.
    """
    url = template.url_pattern
    for name in PLACEHOLDERS:
        url = url.replace("{" + name + "}", template.placeholders.get(name, ""))
    # {ip} is substituted last.
    return url.replace("{ip}", ip)
