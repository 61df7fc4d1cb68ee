from typing import Any

from iplocate.clients.base import BaseProviderClient
from iplocate.clients.template import ProviderTemplate
from iplocate.models.common import CanonicalLocation, IpFamily


class IpInfoIo(BaseProviderClient):
    """Client for https://ipinfo.io (free up to 1,000 lookups daily).

    Coordinates come as a single `loc` field ("37.3860,-122.0838") which is split into
    latitude and longitude. `/{ip}/country` answers with the bare country code as
    text/plain and is used for country-only lookups.
    """

    name = "ipinfo.io"
    template = ProviderTemplate(
        supported_families=IpFamily.BOTH,
        url_pattern="https://ipinfo.io/{ip}/{option}?token={api_key}",
        placeholders={"option": "json"},
        field_map={
            "country_code": "country",
            "region_name": "region",
            "city_name": "city",
            "latitude": "loc",
            "longitude": "loc",
        },
    )

    def _country_template(self) -> ProviderTemplate:
        return self._template.with_placeholders(option="country")

    def _post_process(self, location: CanonicalLocation, data: dict[str, Any]) -> CanonicalLocation:
        if not location.latitude:
            return location

        latitude, _, longitude = location.latitude.partition(",")
        return location.model_copy(
            update={"latitude": latitude.strip() or None, "longitude": longitude.strip() or None}
        )
