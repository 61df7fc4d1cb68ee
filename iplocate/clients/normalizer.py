"""Decoding of provider payloads and projection into CanonicalLocation.

Providers answer with JSON or with flat XML documents. XML is read with a single
tag/value pattern rather than an XML parser: upstream payloads are shallow key/value
documents, nested elements are not supported and the last occurrence of a repeated
tag wins.
"""

import html
import json
import re
from enum import Enum
from typing import Any

from iplocate.clients.template import ProviderTemplate, family_of
from iplocate.errors import FamilyMismatchError, UnsupportedContentTypeError
from iplocate.models.common import CanonicalLocation

XML_TAG_PATTERN = re.compile(r"<(.+?)>(?:<!\[CDATA\[)?([^>]*?)(?:\]\]>)?</\1>", re.IGNORECASE)
COUNTRY_CODE_PATTERN = re.compile(r"[A-Z]{2}")


class PayloadFormat(str, Enum):
    json = "json"
    xml = "xml"
    unsupported = "unsupported"


# Some providers serve JSON as text/html or text/plain.
_SUBTYPE_FORMATS: dict[str, PayloadFormat] = {
    "json": PayloadFormat.json,
    "html": PayloadFormat.json,
    "plain": PayloadFormat.json,
    "xml": PayloadFormat.xml,
}


def content_subtype(content_type: str | None) -> str:
    """Return the subtype of a Content-Type header, e.g. `json` for `application/json; charset=utf-8`."""
    if not content_type:
        return ""
    _, _, subtype = content_type.partition("/")
    return subtype.split(";", 1)[0].strip().lower()


def classify_content_type(content_type: str | None) -> PayloadFormat:
    return _SUBTYPE_FORMATS.get(content_subtype(content_type), PayloadFormat.unsupported)


def extract_xml_tags(body: str) -> dict[str, str]:
    return {tag: value for tag, value in XML_TAG_PATTERN.findall(body)}


def decode_json(body: str, template: ProviderTemplate) -> dict[str, Any]:
    """Decode a JSON object.

    Providers with a country-only endpoint answer with the bare code (e.g. `US\\n`);
    such bodies are stored under the key the template reads the country code from.
    """
    try:
        data = json.loads(body)
    except ValueError:
        data = None
    if isinstance(data, dict):
        return data

    country_key = template.field_map.get("country_code")
    return {country_key: body.strip()} if country_key else {}


def decode_body(body: str, content_type: str | None, template: ProviderTemplate) -> dict[str, Any]:
    payload_format = classify_content_type(content_type)
    if payload_format is PayloadFormat.json:
        return decode_json(body, template)
    if payload_format is PayloadFormat.xml:
        return extract_xml_tags(body)
    raise UnsupportedContentTypeError(f"unsupported content type: {content_subtype(content_type) or content_type}")


def _is_empty(value: Any) -> bool:
    if value is None or value is False:
        return True
    if isinstance(value, (str, list, dict, tuple)):
        return len(value) == 0
    return False


def _project_value(value: Any) -> str | None:
    if isinstance(value, str):
        return html.escape(value)
    if isinstance(value, (list, dict, tuple)):
        return None
    return str(value)


def validate_country_code(value: str | None) -> str | None:
    """Keep the two leading uppercase letters of a country code, or drop it entirely."""
    if value is None:
        return None
    match = COUNTRY_CODE_PATTERN.match(value)
    return match.group(0) if match else None


def project(data: dict[str, Any], template: ProviderTemplate) -> CanonicalLocation:
    """Map a decoded payload onto the canonical fields named in the template's field map."""
    fields: dict[str, str] = {}
    for canonical, upstream in template.field_map.items():
        if not upstream:
            continue
        value = data.get(upstream)
        if _is_empty(value):
            continue
        projected = _project_value(value)
        if projected is not None:
            fields[canonical] = projected

    if "country_code" in fields:
        country_code = validate_country_code(fields["country_code"])
        if country_code is None:
            del fields["country_code"]
        else:
            fields["country_code"] = country_code

    return CanonicalLocation(**fields)


def check_family(ip: str, template: ProviderTemplate) -> None:
    family = family_of(ip)
    if not template.supports(family):
        raise FamilyMismatchError(f"{family.name} address {ip} is not supported by this provider")


def normalize(ip: str, raw_body: str, content_type: str | None, template: ProviderTemplate) -> CanonicalLocation:
    """Decode a raw provider response and project it into a CanonicalLocation.

    Raises FamilyMismatchError if the provider cannot handle the IP's address family.
    An undecodable payload is not raised: it yields an error location so the caller
    can move on to the next provider.
    """
    check_family(ip, template)
    try:
        data = decode_body(raw_body, content_type, template)
    except UnsupportedContentTypeError as exc:
        return CanonicalLocation.error(str(exc))
    return project(data, template)
