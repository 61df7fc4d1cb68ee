from typing import Any

from iplocate.clients.base import BaseProviderClient
from iplocate.clients.template import ProviderTemplate
from iplocate.models.common import CanonicalLocation, IpFamily


class Ipapi(BaseProviderClient):
    """Client for https://ipapi.com (10,000 free lookups monthly with an access key).

    ipapi answers errors with HTTP 200 and an envelope such as
    `{"success": false, "error": {"code": 101, "type": "missing_access_key", "info": "..."}}`.
    """

    name = "ipapi"
    template = ProviderTemplate(
        supported_families=IpFamily.BOTH,
        url_pattern="http://api.ipapi.com/{ip}?access_key={api_key}",
        field_map={
            "country_code": "country_code",
            "country_name": "country_name",
            "region_name": "region_name",
            "city_name": "city",
            "latitude": "latitude",
            "longitude": "longitude",
        },
    )

    def _post_process(self, location: CanonicalLocation, data: dict[str, Any]) -> CanonicalLocation:
        if location.country_name:
            return location

        error = data.get("error")
        info = error.get("info") if isinstance(error, dict) else None
        return CanonicalLocation.error(str(info or "Unknown error from ipapi.com"))
