from iplocate.clients.base import BaseProviderClient
from iplocate.clients.template import ProviderTemplate
from iplocate.models.common import IpFamily


class Ipstack(BaseProviderClient):
    """Client for https://ipstack.com (free for registered users, plain HTTP only)."""

    name = "ipstack"
    template = ProviderTemplate(
        supported_families=IpFamily.BOTH,
        url_pattern="http://api.ipstack.com/{ip}?access_key={api_key}&output={format}",
        placeholders={"format": "json"},
        field_map={
            "country_code": "country_code",
            "country_name": "country_name",
            "region_name": "region_name",
            "city_name": "city",
            "latitude": "latitude",
            "longitude": "longitude",
        },
    )
