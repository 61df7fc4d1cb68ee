from abc import ABC
from http import HTTPStatus
from typing import Any, ClassVar

import httpx

from iplocate.clients.normalizer import check_family, decode_body, project
from iplocate.clients.template import ProviderTemplate, build_url
from iplocate.errors import TransportFailureError, UnsupportedContentTypeError
from iplocate.logger import logger
from iplocate.models.common import CanonicalLocation


class BaseProviderClient(ABC):
    """Base for all template driven IP geolocation clients.

    Concrete clients declare a `template` and, when the provider needs it, override
    `_post_process` or `_country_template`. Provider failures are returned as
    CanonicalLocation error records so the caller can fall back to the next provider;
    only FamilyMismatchError and InvalidIpError are raised.
    """

    name: ClassVar[str]
    template: ClassVar[ProviderTemplate]

    def __init__(self, api_key: str | None = None, timeout_seconds: float = 5.0) -> None:
        self._api_key = api_key
        self._timeout_seconds = timeout_seconds
        self._template = self.template.with_placeholders(api_key=api_key) if api_key else self.template

    @property
    def api_key(self) -> str | None:
        return self._api_key

    async def lookup(self, ip: str, request_args: dict[str, Any] | None = None) -> CanonicalLocation:
        """Look up geolocation information for an explicit IP address."""
        return await self._lookup(ip, self._template, request_args)

    async def lookup_country_only(self, ip: str, request_args: dict[str, Any] | None = None) -> str | None:
        """Look up the country code only, using a cheaper endpoint where the provider has one."""
        template = self._country_template()
        if template is None:
            location = await self.lookup(ip, request_args)
        else:
            location = await self._lookup(ip, template, request_args)
        return location.country_code

    def _country_template(self) -> ProviderTemplate | None:
        """Template for a country-only request, None when the provider has no such endpoint."""
        return None

    def _post_process(self, location: CanonicalLocation, data: dict[str, Any]) -> CanonicalLocation:
        return location

    async def _lookup(
        self, ip: str, template: ProviderTemplate, request_args: dict[str, Any] | None
    ) -> CanonicalLocation:
        check_family(ip, template)
        url = build_url(ip, template)

        try:
            response = await self._fetch(url, request_args or {})
            self._handle_http_errors(response)
            data = decode_body(response.text, response.headers.get("content-type"), template)
        except (TransportFailureError, UnsupportedContentTypeError) as exc:
            logger.warning(f"IP provider lookup failed provider={self.name} ip={ip} error={exc}")
            return CanonicalLocation.error(str(exc))

        return self._post_process(project(data, template), data)

    async def _fetch(self, url: str, request_args: dict[str, Any]) -> httpx.Response:
        try:
            async with httpx.AsyncClient(timeout=self._timeout_seconds) as client:
                return await client.get(url, **request_args)
        except httpx.RequestError as exc:
            raise TransportFailureError(f"Request to IP provider failed: {exc!r}") from exc

    def _handle_http_errors(self, response: httpx.Response) -> None:
        """Treat any HTTP error status as a failed lookup."""
        status_code = response.status_code

        if status_code == HTTPStatus.TOO_MANY_REQUESTS:
            raise TransportFailureError("IP provider rate limit or quota exceeded (HTTP 429).")
        if status_code >= HTTPStatus.BAD_REQUEST:
            raise TransportFailureError(f"IP provider returned HTTP {status_code}: {response.text[:200]}")
