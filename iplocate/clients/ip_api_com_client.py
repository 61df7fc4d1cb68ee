from iplocate.clients.base import BaseProviderClient
from iplocate.clients.template import ProviderTemplate
from iplocate.models.common import IpFamily


class IpApiCom(BaseProviderClient):
    """Client for the http://ip-api.com JSON API.

    Free for non-commercial use, 45 requests per minute, no API key.
    A failed lookup answers `{"status": "fail", "message": "private range"}`,
    which surfaces through the `message` field.
    """

    name = "IP-API.com"
    template = ProviderTemplate(
        supported_families=IpFamily.BOTH,
        url_pattern="http://ip-api.com/{format}/{ip}",
        placeholders={"format": "json"},
        field_map={
            "error_message": "message",
            "country_code": "countryCode",
            "country_name": "country",
            "region_name": "regionName",
            "city_name": "city",
            "latitude": "lat",
            "longitude": "lon",
        },
    )
