import re

from iplocate.clients.base import BaseProviderClient
from iplocate.clients.template import ProviderTemplate
from iplocate.models.common import IpFamily


class IpInfoDb(BaseProviderClient):
    """Client for the https://ipinfodb.com XML API (free for registered users, 2 queries/second)."""

    name = "IPInfoDB"
    template = ProviderTemplate(
        supported_families=IpFamily.BOTH,
        url_pattern="https://api.ipinfodb.com/v3/{option}/?key={api_key}&format={format}&ip={ip}",
        placeholders={"format": "xml", "option": "ip-city"},
        field_map={
            "error_message": "statusMessage",
            "country_code": "countryCode",
            "country_name": "countryName",
            "region_name": "regionName",
            "city_name": "cityName",
            "latitude": "latitude",
            "longitude": "longitude",
        },
    )

    def __init__(self, api_key: str | None = None, timeout_seconds: float = 5.0) -> None:
        # Keys are hex strings; anything else would end up in the query string.
        super().__init__(re.sub(r"\W", "", api_key) if api_key else None, timeout_seconds)

    def _country_template(self) -> ProviderTemplate:
        return self._template.with_placeholders(option="ip-country")
