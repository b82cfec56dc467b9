"""Caller input checks performed before any request is sent."""

import re
from typing import Optional

from s3proto.errors import ValidationError

MIN_PART_SIZE = 16 * 1024 * 1024
MAX_PART_SIZE = 5 * 1024 * 1024 * 1024
MAX_OBJECT_SIZE = 5 * 1024 * 1024 * 1024 * 1024
MAX_PARTS = 10000

_BUCKET_NAME = re.compile(r"^[a-z0-9][a-z0-9.\-]{1,61}[a-z0-9]$")
_FORBIDDEN_PREFIXES = ("xn--", "sthree-")
_FORBIDDEN_SUFFIXES = ("-s3alias", "--ol-s3")


def verify_bucket_name(name: str) -> bool:
    """Check a bucket name against the S3 general purpose naming rules.

    Raises:
        TypeError: If ``name`` is None.
    """
    if name is None:
        raise TypeError("bucket name must not be None")
    if not _BUCKET_NAME.match(name):
        return False
    if ".." in name:
        return False
    if name.startswith(_FORBIDDEN_PREFIXES) or name.endswith(_FORBIDDEN_SUFFIXES):
        return False
    return True


def check_bucket_name(name: str) -> None:
    if not verify_bucket_name(name):
        raise ValidationError(f"Invalid bucket name: {name!r}")


def check_object_key(key: Optional[str]) -> None:
    """Reject empty keys and keys that URL normalization would rewrite."""
    if not key:
        raise ValidationError("Object key must not be empty")
    if any(segment in (".", "..") for segment in key.split("/")):
        raise ValidationError(f"Object key must not contain '.' or '..' path segments: {key!r}")


def check_part_number(part_number: int) -> None:
    if not 1 <= part_number <= MAX_PARTS:
        raise ValidationError(f"Part number must be between 1 and {MAX_PARTS}, got {part_number}")


def check_object_size(size: int) -> None:
    if size < 0:
        raise ValidationError(f"Object size must not be negative, got {size}")
    if size > MAX_OBJECT_SIZE:
        raise ValidationError(f"Object size {size} exceeds the maximum of {MAX_OBJECT_SIZE} bytes")


def check_part_size(size: int, is_last: bool = False) -> None:
    """Reject parts below the minimum (except the last) or above the maximum."""
    if size > MAX_PART_SIZE:
        raise ValidationError(f"Part size {size} exceeds the maximum of {MAX_PART_SIZE} bytes")
    if size < MIN_PART_SIZE and not is_last:
        raise ValidationError(f"Part size {size} is below the minimum of {MIN_PART_SIZE} bytes")


def optimal_part_size(total_size: int) -> int:
    """Smallest multiple of the minimum part size that fits in MAX_PARTS parts."""
    check_object_size(total_size)
    parts_needed = -(-total_size // (MIN_PART_SIZE * MAX_PARTS))
    return max(1, parts_needed) * MIN_PART_SIZE
