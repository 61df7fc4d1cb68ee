from ipaddress import ip_address

from pydantic import BaseModel, Field, field_validator

from iplocate.models.common import Hook


class IPLookupRequest(BaseModel):
    """Request model for IP geolocation lookup via query parameters.

    If `ip` is provided, the service will look up that explicit IP address.
    If `ip` is omitted or null, the address of the calling client is used.

    `provider` pins the lookup to one provider. If omitted, the eligible providers are
    tried in turn until one of them knows the address.
    """

    ip: str | None = Field(
        default=None,
        description="IPv4 or IPv6 address to look up. If omitted, the client's IP is used.",
        examples=["8.8.8.8", "2001:4860:4860::8888"],
    )
    provider: str | None = Field(
        default=None,
        description="Provider to use for the lookup. Defaults to every eligible provider in turn.",
        examples=["IP-API.com", "ipinfo.io", "Cache"],
    )
    hook: Hook = Field(
        default=Hook.public,
        description="Context of the lookup, only `public` lookups count visits per session.",
    )

    @field_validator("ip", mode="before")
    @classmethod
    def _validate_ip(cls, value: str | None) -> str | None:
        """Validate that ip is either empty/None or a valid IP address (IPv4 or IPv6).

        - None or blank string -> treated as None (client IP lookup, no error).
        - Non-blank -> must be a valid IP literal, otherwise a validation error
          is raised and the endpoint handler is never invoked.
        """
        if value is None:
            return None

        value_str = str(value).strip()
        if not value_str:
            return None

        try:
            ip_address(value_str)
        except ValueError as exc:
            raise ValueError("ip must be a valid IPv4 or IPv6 address") from exc

        return value_str

    @field_validator("provider", mode="before")
    @classmethod
    def _blank_provider_to_none(cls, value: str | None) -> str | None:
        if value is None or not str(value).strip():
            return None
        return str(value).strip()
