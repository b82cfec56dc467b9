"""Continuation-token driven listings.

``paginate`` is the one loop shared by every listing: fetch a page with the
current token, yield its items in server order, stop once a page reports
``IsTruncated=false``. The decoders below turn ListObjectsV2, ListParts and
ListMultipartUploads documents into ``ListingPage`` values.

Each logical listing is a fresh async generator; a partially consumed one
cannot be resumed, only re-issued from the first page.
"""

import logging
from typing import Any, AsyncIterator, Awaitable, Callable, Optional, TypeVar
from urllib.parse import unquote_plus

from s3proto.errors import InvalidResponseError
from s3proto.models import ChecksumAlgorithm, ListingPage, ObjectItem, PartItem, UploadItem
from s3proto.xmlutil import findall, findtext, local_name, parse_iso8601, parse_xml

logger = logging.getLogger(__name__)

T = TypeVar("T")

PageFetcher = Callable[[Any], Awaitable[ListingPage[T]]]


async def paginate(fetch_page: PageFetcher, token: Any = None) -> AsyncIterator[T]:
    """Yield every item of a listing, page by page.

    Args:
        fetch_page: Coroutine function taking the continuation token (None
                    for the first page) and returning the decoded page.
        token: Token to start from, if resuming at a known position.

    Raises:
        InvalidResponseError: If a truncated page carries no next token,
                              which would otherwise loop forever.
    """
    page_number = 0
    while True:
        page = await fetch_page(token)
        page_number += 1
        logger.debug("Listing page %d: %d item(s), truncated=%s", page_number, len(page.items), page.is_truncated)
        for item in page.items:
            yield item
        if not page.is_truncated:
            return
        if page.next_token in (None, ""):
            raise InvalidResponseError("Truncated listing page without a continuation token")
        token = page.next_token


def _is_truncated(root) -> bool:
    return findtext(root, "IsTruncated").strip().lower() == "true"


def _int(text: str, default: int = 0) -> int:
    try:
        return int(text)
    except ValueError:
        return default


def decode_objects_page(data: bytes) -> ListingPage[ObjectItem]:
    """Decode a ListObjectsV2 result.

    Keys are URL-decoded when the response says ``EncodingType=url``.
    Common prefixes become items with ``is_prefix`` set, in document order.
    """
    root = parse_xml(data)
    url_encoded = findtext(root, "EncodingType").lower() == "url"

    def decode_key(text: str) -> str:
        return unquote_plus(text) if url_encoded else text

    items = []
    for child in root:
        name = local_name(child.tag)
        if name == "Contents":
            items.append(ObjectItem(
                key=decode_key(findtext(child, "Key")),
                etag=findtext(child, "ETag"),
                size=_int(findtext(child, "Size"), -1),
                storage_class=findtext(child, "StorageClass"),
                last_modified=parse_iso8601(findtext(child, "LastModified")),
            ))
        elif name == "CommonPrefixes":
            items.append(ObjectItem(key=decode_key(findtext(child, "Prefix")), is_prefix=True))

    return ListingPage(
        items=items,
        next_token=findtext(root, "NextContinuationToken") or None,
        is_truncated=_is_truncated(root),
    )


def decode_parts_page(data: bytes) -> ListingPage[PartItem]:
    """Decode a ListParts result; the token is ``NextPartNumberMarker``."""
    root = parse_xml(data)
    items = []
    for part in findall(root, "Part"):
        checksums = {}
        for alg in ChecksumAlgorithm:
            value = findtext(part, alg.element)
            if value:
                checksums[alg] = value
        items.append(PartItem(
            part_number=_int(findtext(part, "PartNumber")),
            etag=findtext(part, "ETag"),
            size=_int(findtext(part, "Size")),
            last_modified=parse_iso8601(findtext(part, "LastModified")),
            checksums=checksums,
        ))
    return ListingPage(
        items=items,
        next_token=findtext(root, "NextPartNumberMarker") or None,
        is_truncated=_is_truncated(root),
    )


def decode_uploads_page(data: bytes) -> ListingPage[UploadItem]:
    """Decode a ListMultipartUploads result.

    The token is the pair ``(NextKeyMarker, NextUploadIdMarker)``; both
    markers must be sent together on the next request. The key marker is
    URL-decoded like the keys themselves.
    """
    root = parse_xml(data)
    url_encoded = findtext(root, "EncodingType").lower() == "url"
    items = []
    for upload in findall(root, "Upload"):
        key = findtext(upload, "Key")
        items.append(UploadItem(
            key=unquote_plus(key) if url_encoded else key,
            upload_id=findtext(upload, "UploadId"),
            initiated=parse_iso8601(findtext(upload, "Initiated")),
            storage_class=findtext(upload, "StorageClass"),
        ))

    key_marker = findtext(root, "NextKeyMarker") or None
    if key_marker is not None and url_encoded:
        key_marker = unquote_plus(key_marker)
    upload_id_marker = findtext(root, "NextUploadIdMarker") or None
    token: Optional[tuple[Optional[str], Optional[str]]] = None
    if key_marker is not None or upload_id_marker is not None:
        token = (key_marker, upload_id_marker)
    return ListingPage(items=items, next_token=token, is_truncated=_is_truncated(root))
