"""Data models for the S3 protocol engine."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Generic, Optional, TypeVar

T = TypeVar("T")


class ChecksumAlgorithm(Enum):
    """Object checksum algorithms supported by S3 multipart uploads."""

    CRC32 = "CRC32"
    CRC32C = "CRC32C"
    SHA1 = "SHA1"
    SHA256 = "SHA256"

    @property
    def header(self) -> str:
        """Request/response header carrying the base64 checksum."""
        return f"x-amz-checksum-{self.value.lower()}"

    @property
    def element(self) -> str:
        """XML element name used in the completion manifest."""
        return f"Checksum{self.value}"

    @property
    def bits(self) -> int:
        return {"CRC32": 32, "CRC32C": 32, "SHA1": 160, "SHA256": 256}[self.value]


class RetentionMode(Enum):
    """Object lock retention mode."""

    GOVERNANCE = "GOVERNANCE"
    COMPLIANCE = "COMPLIANCE"


class LegalHoldStatus(Enum):
    """Object lock legal hold status."""

    ON = "ON"
    OFF = "OFF"


@dataclass(frozen=True)
class ErrorResponse:
    """Parsed S3 ``<Error>`` envelope."""

    code: str = ""
    message: str = ""
    bucket_name: str = ""
    key: str = ""
    resource: str = ""
    request_id: str = ""
    host_id: str = ""
    region: str = ""
    server: str = ""


@dataclass(frozen=True)
class S3Range:
    """Byte range for ranged GET requests.

    See ``s3proto.options.format_range`` for the accepted shapes.
    """

    start: int
    end: int


@dataclass
class ListingPage(Generic[T]):
    """A single page of a paginated listing."""

    items: list[T]
    next_token: Any = None
    is_truncated: bool = False


@dataclass
class BucketInfo:
    """A bucket returned by ListBuckets."""

    name: str
    creation_date: Optional[datetime] = None


@dataclass
class ObjectItem:
    """An object (or common prefix) returned by ListObjectsV2."""

    key: str
    etag: str = ""
    size: int = 0
    storage_class: str = ""
    last_modified: Optional[datetime] = None
    is_prefix: bool = False


@dataclass
class PartItem:
    """An uploaded part returned by ListParts."""

    part_number: int
    etag: str
    size: int = 0
    last_modified: Optional[datetime] = None
    checksums: dict[ChecksumAlgorithm, str] = field(default_factory=dict)


@dataclass
class UploadItem:
    """An in-progress multipart upload returned by ListMultipartUploads."""

    key: str
    upload_id: str
    initiated: Optional[datetime] = None
    storage_class: str = ""


@dataclass
class UploadPartResult:
    """Result of a single UploadPart call."""

    etag: str
    checksums: dict[ChecksumAlgorithm, str] = field(default_factory=dict)


@dataclass
class PartInfo:
    """A part as presented to CompleteMultipartUpload.

    ``checksum`` holds the raw digest bytes; it is only sent when
    ``checksum_algorithm`` is set as well.
    """

    part_number: int
    etag: str
    checksum_algorithm: Optional[ChecksumAlgorithm] = None
    checksum: Optional[bytes] = None


@dataclass
class UploadSession:
    """An open multipart upload and the parts acknowledged so far.

    Parts are keyed by part number, so re-uploading a part replaces the
    earlier acknowledgement and only the ETag of the kept attempt is ever
    submitted.
    """

    bucket: str
    key: str
    upload_id: str
    abort_date: Optional[datetime] = None
    abort_rule_id: Optional[str] = None
    parts: dict[int, PartInfo] = field(default_factory=dict)

    def record_part(self, part: PartInfo) -> None:
        """Record (or replace) an acknowledged part."""
        self.parts[part.part_number] = part

    def sorted_parts(self) -> list[PartInfo]:
        """Acknowledged parts in ascending part-number order."""
        return [self.parts[number] for number in sorted(self.parts)]


@dataclass
class CompleteMultipartUploadResult:
    """Result of CompleteMultipartUpload."""

    location: str = ""
    bucket: str = ""
    key: str = ""
    etag: str = ""
    checksums: dict[ChecksumAlgorithm, str] = field(default_factory=dict)


@dataclass
class ObjectInfo:
    """Object metadata decoded from HEAD/GET response headers."""

    key: str
    etag: str = ""
    size: int = 0
    content_type: str = "application/octet-stream"
    last_modified: Optional[datetime] = None
    expires: Optional[datetime] = None
    version_id: Optional[str] = None
    is_delete_marker: bool = False
    replication_status: Optional[str] = None
    expiration: Optional[datetime] = None
    expiration_rule_id: Optional[str] = None
    restore_ongoing: Optional[bool] = None
    restore_expiry: Optional[datetime] = None
    metadata: dict[str, str] = field(default_factory=dict)
    user_metadata: dict[str, str] = field(default_factory=dict)
    user_tag_count: int = 0
    checksums: dict[ChecksumAlgorithm, str] = field(default_factory=dict)
