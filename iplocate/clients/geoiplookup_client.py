from iplocate.clients.base import BaseProviderClient
from iplocate.clients.template import ProviderTemplate
from iplocate.models.common import IpFamily


class GeoIpLookup(BaseProviderClient):
    """Client for the http://geoiplookup.net XML API (free, no API key)."""

    name = "GeoIPLookup"
    template = ProviderTemplate(
        supported_families=IpFamily.BOTH,
        url_pattern="http://api.geoiplookup.net/?query={ip}",
        field_map={
            "country_code": "countrycode",
            "country_name": "countryname",
            "city_name": "city",
            "latitude": "latitude",
            "longitude": "longitude",
        },
    )
