"""Bucket configuration documents: notifications, versioning, object lock.

Each document is a dataclass with ``to_xml()`` producing the request body
element and a ``from_xml()`` classmethod accepting a parsed response root.
"""

import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union

from s3proto.errors import InvalidResponseError
from s3proto.models import RetentionMode
from s3proto.xmlutil import add_text, find, findall, findtext, local_name, new_document


class EventType:
    """Well-known bucket event names."""

    OBJECT_CREATED_ALL = "s3:ObjectCreated:*"
    OBJECT_CREATED_PUT = "s3:ObjectCreated:Put"
    OBJECT_CREATED_POST = "s3:ObjectCreated:Post"
    OBJECT_CREATED_COPY = "s3:ObjectCreated:Copy"
    OBJECT_CREATED_COMPLETE_MULTIPART_UPLOAD = "s3:ObjectCreated:CompleteMultipartUpload"
    OBJECT_ACCESSED_GET = "s3:ObjectAccessed:Get"
    OBJECT_ACCESSED_HEAD = "s3:ObjectAccessed:Head"
    OBJECT_ACCESSED_ALL = "s3:ObjectAccessed:*"
    OBJECT_REMOVED_ALL = "s3:ObjectRemoved:*"
    OBJECT_REMOVED_DELETE = "s3:ObjectRemoved:Delete"
    OBJECT_REMOVED_DELETE_MARKER_CREATED = "s3:ObjectRemoved:DeleteMarkerCreated"
    REDUCED_REDUNDANCY_LOST_OBJECT = "s3:ReducedRedundancyLostObject"


def _required(element: ET.Element, name: str) -> str:
    child = find(element, name)
    if child is None or child.text is None:
        raise InvalidResponseError(f"Missing {name} in {local_name(element.tag)}")
    return child.text


@dataclass
class NotificationTarget:
    """One notification rule: a target ARN, its events and key filter.

    ``kind`` selects the XML element: ``CloudFunction`` (lambda), ``Topic``
    or ``Queue``.
    """

    kind: str
    arn: str
    id: str = ""
    events: list[str] = field(default_factory=list)
    filter: dict[str, str] = field(default_factory=dict)

    def to_xml(self, parent: ET.Element) -> ET.Element:
        element = add_text(parent, f"{self.kind}Configuration")
        add_text(element, self.kind, self.arn)
        if self.id:
            add_text(element, "Id", self.id)
        for event in self.events:
            add_text(element, "Event", event)
        if self.filter:
            s3_key = add_text(add_text(element, "Filter"), "S3Key")
            for name, value in self.filter.items():
                rule = add_text(s3_key, "FilterRule")
                add_text(rule, "Name", name)
                add_text(rule, "Value", value)
        return element

    @classmethod
    def from_xml(cls, element: ET.Element, kind: str) -> "NotificationTarget":
        target = cls(
            kind=kind,
            arn=_required(element, kind),
            id=findtext(element, "Id"),
            events=[e.text or "" for e in findall(element, "Event")],
        )
        filter_element = find(element, "Filter")
        s3_key = find(filter_element, "S3Key") if filter_element is not None else None
        if s3_key is not None:
            for rule in findall(s3_key, "FilterRule"):
                target.filter[_required(rule, "Name")] = _required(rule, "Value")
        return target


def lambda_config(arn: str, **kwargs) -> NotificationTarget:
    return NotificationTarget("CloudFunction", arn, **kwargs)


def topic_config(arn: str, **kwargs) -> NotificationTarget:
    return NotificationTarget("Topic", arn, **kwargs)


def queue_config(arn: str, **kwargs) -> NotificationTarget:
    return NotificationTarget("Queue", arn, **kwargs)


@dataclass
class BucketNotification:
    """A bucket's NotificationConfiguration document."""

    lambda_configs: list[NotificationTarget] = field(default_factory=list)
    topic_configs: list[NotificationTarget] = field(default_factory=list)
    queue_configs: list[NotificationTarget] = field(default_factory=list)

    def to_xml(self) -> ET.Element:
        root = new_document("NotificationConfiguration")
        for target in self.lambda_configs + self.topic_configs + self.queue_configs:
            target.to_xml(root)
        return root

    @classmethod
    def from_xml(cls, root: ET.Element) -> "BucketNotification":
        if local_name(root.tag) != "NotificationConfiguration":
            raise InvalidResponseError(f"Expected NotificationConfiguration, got {local_name(root.tag)}")
        notification = cls()
        for child in root:
            name = local_name(child.tag)
            if name == "CloudFunctionConfiguration":
                notification.lambda_configs.append(NotificationTarget.from_xml(child, "CloudFunction"))
            elif name == "TopicConfiguration":
                notification.topic_configs.append(NotificationTarget.from_xml(child, "Topic"))
            elif name == "QueueConfiguration":
                notification.queue_configs.append(NotificationTarget.from_xml(child, "Queue"))
        return notification

    def __str__(self) -> str:
        return ET.tostring(self.to_xml(), encoding="unicode")


class VersioningStatus(Enum):
    OFF = "Off"
    ENABLED = "Enabled"
    SUSPENDED = "Suspended"


@dataclass
class VersioningConfiguration:
    """A bucket's VersioningConfiguration document.

    A bucket that never had versioning enabled reports no status at all,
    which decodes as ``OFF``. ``OFF`` cannot be written back.
    """

    status: VersioningStatus = VersioningStatus.OFF
    mfa_delete: bool = False

    def to_xml(self) -> ET.Element:
        if self.status is VersioningStatus.OFF:
            raise ValueError("Versioning can only be set to Enabled or Suspended")
        root = new_document("VersioningConfiguration")
        add_text(root, "Status", self.status.value)
        add_text(root, "MfaDelete", "Enabled" if self.mfa_delete else "Disabled")
        return root

    @classmethod
    def from_xml(cls, root: ET.Element) -> "VersioningConfiguration":
        status_text = findtext(root, "Status")
        try:
            status = VersioningStatus(status_text) if status_text else VersioningStatus.OFF
        except ValueError as e:
            raise InvalidResponseError(f"Invalid versioning status: {status_text!r}") from e
        return cls(status=status, mfa_delete=findtext(root, "MfaDelete") == "Enabled")


@dataclass(frozen=True)
class RetentionDays:
    mode: RetentionMode
    days: int


@dataclass(frozen=True)
class RetentionYears:
    mode: RetentionMode
    years: int


RetentionRule = Union[RetentionDays, RetentionYears]


def retention_to_xml(rule: RetentionRule, parent: ET.Element) -> ET.Element:
    element = add_text(parent, "DefaultRetention")
    add_text(element, "Mode", rule.mode.value)
    if isinstance(rule, RetentionDays):
        add_text(element, "Days", str(rule.days))
    elif isinstance(rule, RetentionYears):
        add_text(element, "Years", str(rule.years))
    else:
        raise TypeError(f"Unsupported retention rule: {rule!r}")
    return element


def retention_from_xml(element: ET.Element) -> RetentionRule:
    """Decode ``DefaultRetention``; the variant follows ``Days`` or ``Years``."""
    mode_text = findtext(element, "Mode")
    try:
        mode = RetentionMode(mode_text)
    except ValueError as e:
        raise InvalidResponseError(f"Invalid retention mode: {mode_text!r}") from e

    try:
        if find(element, "Days") is not None:
            return RetentionDays(mode, int(findtext(element, "Days")))
        if find(element, "Years") is not None:
            return RetentionYears(mode, int(findtext(element, "Years")))
    except ValueError as e:
        raise InvalidResponseError("Retention period is not an integer") from e
    raise InvalidResponseError("No 'Days' or 'Years' element found")


@dataclass
class ObjectLockConfiguration:
    """A bucket's ObjectLockConfiguration, with an optional default retention."""

    default_retention: Optional[RetentionRule] = None

    def to_xml(self) -> ET.Element:
        root = new_document("ObjectLockConfiguration")
        add_text(root, "ObjectLockEnabled", "Enabled")
        if self.default_retention is not None:
            retention_to_xml(self.default_retention, add_text(root, "Rule"))
        return root

    @classmethod
    def from_xml(cls, root: ET.Element) -> "ObjectLockConfiguration":
        rule = find(root, "Rule")
        retention = find(rule, "DefaultRetention") if rule is not None else None
        return cls(default_retention=retention_from_xml(retention) if retention is not None else None)
