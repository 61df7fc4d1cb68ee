from iplocate.clients.base import BaseProviderClient
from iplocate.clients.template import ProviderTemplate
from iplocate.models.common import IpFamily


class IpdataCo(BaseProviderClient):
    """Client for https://ipdata.co (1,500 free lookups daily with an API key)."""

    name = "Ipdata.co"
    template = ProviderTemplate(
        supported_families=IpFamily.BOTH,
        url_pattern="https://api.ipdata.co/{ip}?api-key={api_key}",
        field_map={
            "error_message": "message",
            "country_code": "country_code",
            "country_name": "country_name",
            "region_name": "region",
            "city_name": "city",
            "latitude": "latitude",
            "longitude": "longitude",
        },
    )
