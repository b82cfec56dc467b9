"""Bucket notification events delivered over a long-lived NDJSON response.

MinIO's listen API keeps one GET response open and writes one JSON
document per line. Documents carrying ``Records`` hold real events; the
server also writes periodic keep-alive lines (blank, or JSON without
records) that must never surface as events.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Iterable

from s3proto.errors import InvalidResponseError
from s3proto.pipeline import RequestPipeline, S3Request
from s3proto.query import QueryParams
from s3proto.validation import check_bucket_name

logger = logging.getLogger(__name__)

PING_INTERVAL_SECONDS = 10

DEFAULT_EVENTS = (
    "s3:ObjectCreated:*",
    "s3:ObjectRemoved:*",
    "s3:ObjectAccessed:*",
)


@dataclass
class Identity:
    principal_id: str = ""


@dataclass
class BucketMeta:
    name: str = ""
    arn: str = ""
    owner_identity: Identity = field(default_factory=Identity)


@dataclass
class ObjectMeta:
    key: str = ""
    size: int = 0
    etag: str = ""
    content_type: str = ""
    version_id: str = ""
    sequencer: str = ""
    user_metadata: dict[str, str] = field(default_factory=dict)


@dataclass
class EventMeta:
    schema_version: str = ""
    configuration_id: str = ""
    bucket: BucketMeta = field(default_factory=BucketMeta)
    object: ObjectMeta = field(default_factory=ObjectMeta)


@dataclass
class SourceInfo:
    host: str = ""
    port: str = ""
    user_agent: str = ""


@dataclass
class NotificationEvent:
    """One event record from the notification stream."""

    event_name: str = ""
    event_time: str = ""
    event_source: str = ""
    event_version: str = ""
    aws_region: str = ""
    s3: EventMeta = field(default_factory=EventMeta)
    source: SourceInfo = field(default_factory=SourceInfo)
    user_identity: Identity = field(default_factory=Identity)
    request_parameters: dict[str, str] = field(default_factory=dict)
    response_elements: dict[str, str] = field(default_factory=dict)

    @property
    def bucket_name(self) -> str:
        return self.s3.bucket.name

    @property
    def key(self) -> str:
        return self.s3.object.key


def _dict(data: Any) -> dict:
    return data if isinstance(data, dict) else {}


def _identity(data: Any) -> Identity:
    return Identity(principal_id=_dict(data).get("principalId", ""))


def event_from_record(record: dict[str, Any]) -> NotificationEvent:
    """Map a JSON record (camelCase keys) onto a NotificationEvent."""
    s3 = _dict(record.get("s3"))
    bucket = _dict(s3.get("bucket"))
    obj = _dict(s3.get("object"))
    source = _dict(record.get("source"))

    return NotificationEvent(
        event_name=record.get("eventName", ""),
        event_time=record.get("eventTime", ""),
        event_source=record.get("eventSource", ""),
        event_version=record.get("eventVersion", ""),
        aws_region=record.get("awsRegion", ""),
        s3=EventMeta(
            schema_version=s3.get("s3SchemaVersion", ""),
            configuration_id=s3.get("configurationId", ""),
            bucket=BucketMeta(
                name=bucket.get("name", ""),
                arn=bucket.get("arn", ""),
                owner_identity=_identity(bucket.get("ownerIdentity")),
            ),
            object=ObjectMeta(
                key=obj.get("key", ""),
                size=int(obj.get("size") or 0),
                etag=obj.get("eTag", ""),
                content_type=obj.get("contentType", ""),
                version_id=obj.get("versionId", ""),
                sequencer=obj.get("sequencer", ""),
                user_metadata=dict(_dict(obj.get("userMetadata"))),
            ),
        ),
        source=SourceInfo(
            host=source.get("host", ""),
            port=str(source.get("port", "")),
            user_agent=source.get("userAgent", ""),
        ),
        user_identity=_identity(record.get("userIdentity")),
        request_parameters=dict(_dict(record.get("requestParameters"))),
        response_elements=dict(_dict(record.get("responseElements"))),
    )


def decode_line(line: str) -> list[NotificationEvent]:
    """Decode one NDJSON line into zero or more events.

    Raises:
        InvalidResponseError: If the line is not a JSON object.
    """
    if not line.strip():
        return []
    try:
        document = json.loads(line)
    except json.JSONDecodeError as e:
        raise InvalidResponseError(f"Malformed notification line: {line[:200]!r}") from e
    if not isinstance(document, dict):
        raise InvalidResponseError(f"Notification line is not a JSON object: {line[:200]!r}")

    records = document.get("Records") or []
    return [event_from_record(record) for record in records if isinstance(record, dict)]


async def decode_notification_lines(lines: AsyncIterator[str]) -> AsyncIterator[NotificationEvent]:
    """Turn a stream of text lines into events, skipping keep-alives.

    The sequence ends when ``lines`` is exhausted.
    """
    async for line in lines:
        events = decode_line(line)
        if not events:
            logger.debug("Skipping keep-alive line")
            continue
        for event in events:
            yield event


def listen_request(
    bucket: str,
    events: Iterable[str] = DEFAULT_EVENTS,
    prefix: str = "",
    suffix: str = "",
) -> S3Request:
    """Build the ``GET /<bucket>?ping=...&events=...`` listen request."""
    check_bucket_name(bucket)
    query = QueryParams()
    query.add("ping", str(PING_INTERVAL_SECONDS))
    for event in events:
        query.add("events", event)
    query.add("prefix", prefix)
    query.add("suffix", suffix)
    return S3Request("GET", bucket, query=query)


async def listen_bucket_notifications(
    pipeline: RequestPipeline,
    bucket: str,
    events: Iterable[str] = DEFAULT_EVENTS,
    prefix: str = "",
    suffix: str = "",
) -> AsyncIterator[NotificationEvent]:
    """Yield events from a bucket as they occur.

    The sequence is open-ended; stop iterating (or cancel the task) to end
    it. The response is closed as soon as the generator is closed.
    """
    request = listen_request(bucket, events, prefix, suffix)
    logger.info("Listening for %s events on bucket %s", ", ".join(request.query.get("events")), bucket)
    async with pipeline.open_stream(request) as response:
        async for event in decode_notification_lines(response.aiter_lines()):
            yield event
