"""Per-request option objects and the headers they translate to."""

import base64
import hashlib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import format_datetime
from typing import Optional

from s3proto.errors import ValidationError
from s3proto.models import ChecksumAlgorithm, LegalHoldStatus, RetentionMode, S3Range
from s3proto.query import QueryParams

META_PREFIX = "X-Amz-Meta-"


def format_range(byte_range: S3Range) -> str:
    """Build the ``Range`` header value for a ranged GET.

    Only three shapes are accepted:

    - ``(0, end < 0)`` is a suffix range, ``bytes=-N`` (the last N bytes)
    - ``(start > 0, 0)`` is an open range, ``bytes=start-``
    - ``0 <= start < end`` is an inclusive range, ``bytes=start-end``

    Raises:
        ValidationError: For any other combination, including ``(0, 0)``.
    """
    start, end = byte_range.start, byte_range.end
    if start == 0 and end < 0:
        return f"bytes={end}"
    if start > 0 and end == 0:
        return f"bytes={start}-"
    if 0 <= start < end:
        return f"bytes={start}-{end}"
    raise ValidationError(f"Invalid range: start={start}, end={end}")


def format_iso_timestamp(moment: datetime) -> str:
    """Format as ``2024-04-11T15:37:13.000Z`` (UTC, millisecond precision)."""
    moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def format_http_date(moment: datetime) -> str:
    return format_datetime(moment.astimezone(timezone.utc), usegmt=True)


def encode_checksum(algorithm: ChecksumAlgorithm, checksum: bytes) -> str:
    """Base64-encode a raw checksum after checking its bit length."""
    if len(checksum) * 8 != algorithm.bits:
        raise ValidationError(f"Expected {algorithm.bits}-bit {algorithm.value} checksum, got {len(checksum) * 8} bits")
    return base64.b64encode(checksum).decode("ascii")


def _quote_etag(etag: str) -> str:
    if not etag:
        raise ValidationError("ETag condition must not be empty")
    if etag == "*" or etag.startswith('"'):
        return etag
    return f'"{etag}"'


class SSECustomerKey:
    """Server-side encryption with a customer-provided AES-256 key (SSE-C)."""

    type = "SSE-C"

    def __init__(self, key: bytes):
        if len(key) != 32:
            raise ValidationError("SSE-C key should have 32 bytes (256 bit)")
        self._key = key

    def headers(self) -> dict[str, str]:
        return {
            "X-Amz-Server-Side-Encryption-Customer-Algorithm": "AES256",
            "X-Amz-Server-Side-Encryption-Customer-Key": base64.b64encode(self._key).decode("ascii"),
            "X-Amz-Server-Side-Encryption-Customer-Key-MD5": base64.b64encode(hashlib.md5(self._key).digest()).decode("ascii"),
        }


@dataclass
class ObjectAttributes:
    """Headers shared by PutObject and CreateMultipartUpload."""

    content_type: Optional[str] = None
    cache_control: Optional[str] = None
    content_disposition: Optional[str] = None
    content_encoding: Optional[str] = None
    content_language: Optional[str] = None
    expires: Optional[datetime] = None
    storage_class: Optional[str] = None
    website_redirect_location: Optional[str] = None
    user_tags: dict[str, str] = field(default_factory=dict)
    retention_mode: Optional[RetentionMode] = None
    retain_until_date: Optional[datetime] = None
    legal_hold: Optional[LegalHoldStatus] = None
    server_side_encryption: Optional[SSECustomerKey] = None

    def headers(self) -> dict[str, str]:
        headers: dict[str, str] = {}
        plain = {
            "Content-Type": self.content_type,
            "Cache-Control": self.cache_control,
            "Content-Disposition": self.content_disposition,
            "Content-Encoding": self.content_encoding,
            "Content-Language": self.content_language,
            "X-Amz-Storage-Class": self.storage_class,
            "X-Amz-Website-Redirect-Location": self.website_redirect_location,
        }
        headers.update({name: value for name, value in plain.items() if value is not None})

        if self.expires is not None:
            headers["Expires"] = format_http_date(self.expires)
        if self.user_tags:
            tags = QueryParams()
            for name, value in self.user_tags.items():
                tags.add(name, value)
            headers["X-Amz-Tagging"] = tags.encode()
        if self.retention_mode is not None:
            headers["X-Amz-Object-Lock-Mode"] = self.retention_mode.value
        if self.retain_until_date is not None:
            headers["X-Amz-Object-Lock-Retain-Until-Date"] = format_iso_timestamp(self.retain_until_date)
        if self.legal_hold is not None:
            headers["X-Amz-Object-Lock-Legal-Hold"] = self.legal_hold.value
        if self.server_side_encryption is not None:
            headers.update(self.server_side_encryption.headers())
        return headers


@dataclass
class PutObjectOptions(ObjectAttributes):
    """Options for a single-request PutObject."""

    user_metadata: dict[str, str] = field(default_factory=dict)
    if_match_etag: Optional[str] = None
    if_none_match_etag: Optional[str] = None

    def headers(self) -> dict[str, str]:
        headers = super().headers()
        if self.if_match_etag is not None:
            headers["If-Match"] = _quote_etag(self.if_match_etag)
        if self.if_none_match_etag is not None:
            headers["If-None-Match"] = _quote_etag(self.if_none_match_etag)
        for name, value in self.user_metadata.items():
            headers[META_PREFIX + name] = value
        return headers


@dataclass
class CreateMultipartUploadOptions(ObjectAttributes):
    """Options for CreateMultipartUpload."""

    user_metadata: dict[str, str] = field(default_factory=dict)
    checksum_algorithm: Optional[ChecksumAlgorithm] = None

    def headers(self) -> dict[str, str]:
        headers = super().headers()
        for name, value in self.user_metadata.items():
            headers[META_PREFIX + name] = value
        if self.checksum_algorithm is not None:
            headers["X-Amz-Checksum-Algorithm"] = self.checksum_algorithm.value
        return headers


@dataclass
class UploadPartOptions:
    """Integrity options for a single UploadPart call.

    ``checksum`` is the raw digest of the part; it is sent only together
    with ``checksum_algorithm``.
    """

    checksum_algorithm: Optional[ChecksumAlgorithm] = None
    checksum: Optional[bytes] = None
    content_md5: Optional[bytes] = None
    server_side_encryption: Optional[SSECustomerKey] = None

    def headers(self) -> dict[str, str]:
        headers: dict[str, str] = {}
        if self.content_md5 is not None:
            if len(self.content_md5) * 8 != 128:
                raise ValidationError("MD5 should be a 128-bit value")
            headers["Content-MD5"] = base64.b64encode(self.content_md5).decode("ascii")
        if self.checksum_algorithm is not None and self.checksum is not None:
            headers[self.checksum_algorithm.header] = encode_checksum(self.checksum_algorithm, self.checksum)
        if self.server_side_encryption is not None:
            headers.update(self.server_side_encryption.headers())
        return headers


@dataclass
class GetObjectOptions:
    """Options for GetObject and HeadObject."""

    version_id: Optional[str] = None
    part_number: Optional[int] = None
    byte_range: Optional[S3Range] = None
    if_match_etag: Optional[str] = None
    if_none_match_etag: Optional[str] = None
    if_modified_since: Optional[datetime] = None
    if_unmodified_since: Optional[datetime] = None
    checksum_mode: bool = False
    server_side_encryption: Optional[SSECustomerKey] = None

    def query(self) -> QueryParams:
        query = QueryParams()
        query.add_if_not_empty("versionId", self.version_id)
        if self.part_number is not None:
            query.add("partNumber", str(self.part_number))
        return query

    def headers(self) -> dict[str, str]:
        headers: dict[str, str] = {}
        if self.server_side_encryption is not None:
            headers.update(self.server_side_encryption.headers())
        if self.checksum_mode:
            headers["X-Amz-Checksum-Mode"] = "ENABLED"
        if self.if_match_etag is not None:
            headers["If-Match"] = _quote_etag(self.if_match_etag)
        if self.if_none_match_etag is not None:
            headers["If-None-Match"] = _quote_etag(self.if_none_match_etag)
        if self.if_modified_since is not None:
            headers["If-Modified-Since"] = format_http_date(self.if_modified_since)
        if self.if_unmodified_since is not None:
            headers["If-Unmodified-Since"] = format_http_date(self.if_unmodified_since)
        if self.byte_range is not None:
            headers["Range"] = format_range(self.byte_range)
        return headers
