"""ElementTree helpers for S3 XML documents.

S3 responses are normally in the ``2006-03-01`` namespace, but several
compatible servers omit it. Lookups here match on local names so both
forms decode the same way.
"""

import xml.etree.ElementTree as ET
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Optional

from s3proto.errors import InvalidResponseError
from s3proto.models import ErrorResponse

NS = "http://s3.amazonaws.com/doc/2006-03-01/"


def local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def parse_xml(data: bytes) -> ET.Element:
    """Parse a response body, raising InvalidResponseError on bad XML."""
    try:
        return ET.fromstring(data)
    except ET.ParseError as e:
        raise InvalidResponseError(f"Malformed XML response: {e}") from e


def find(element: ET.Element, name: str) -> Optional[ET.Element]:
    for child in element:
        if local_name(child.tag) == name:
            return child
    return None


def findall(element: ET.Element, name: str) -> list[ET.Element]:
    return [child for child in element if local_name(child.tag) == name]


def findtext(element: ET.Element, name: str, default: str = "") -> str:
    child = find(element, name)
    if child is None or child.text is None:
        return default
    return child.text


def parse_iso8601(value: Optional[str]) -> Optional[datetime]:
    """Parse timestamps like ``2024-04-11T15:37:13.000Z``."""
    if not value:
        return None
    for fmt in ("%Y-%m-%dT%H:%M:%S.%fZ", "%Y-%m-%dT%H:%M:%SZ"):
        try:
            return datetime.strptime(value, fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue
    raise InvalidResponseError(f"Invalid timestamp: {value!r}")


def parse_http_date(value: Optional[str]) -> Optional[datetime]:
    """Parse RFC 7231 dates (``Last-Modified``, ``Expires``); None if unparseable."""
    if not value:
        return None
    try:
        return parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None


def parse_error_response(data: bytes) -> Optional[ErrorResponse]:
    """Decode an ``<Error>`` envelope, or return None if the body is not one."""
    if not data:
        return None
    try:
        root = ET.fromstring(data)
    except ET.ParseError:
        return None
    if local_name(root.tag) != "Error":
        return None
    return ErrorResponse(
        code=findtext(root, "Code"),
        message=findtext(root, "Message"),
        bucket_name=findtext(root, "BucketName"),
        key=findtext(root, "Key"),
        resource=findtext(root, "Resource"),
        request_id=findtext(root, "RequestId"),
        host_id=findtext(root, "HostId"),
        region=findtext(root, "Region"),
        server=findtext(root, "Server"),
    )


def new_document(root: str) -> ET.Element:
    """Create a namespaced root element for a request body."""
    return ET.Element(root, xmlns=NS)


def add_text(parent: ET.Element, name: str, text: Optional[str] = None) -> ET.Element:
    child = ET.SubElement(parent, name)
    child.text = text
    return child


def to_bytes(element: ET.Element) -> bytes:
    return ET.tostring(element, encoding="utf-8", xml_declaration=False)
