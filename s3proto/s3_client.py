"""S3 client facade and factory.

``S3Client`` turns bucket and object operations into ``S3Request``
descriptions, runs them through the request pipeline and decodes the
responses. ``build_client`` wires the pipeline, signer, retry policy and
httpx client from a ``ClientConfig``.
"""

import base64
import hashlib
import logging
import random
import re
import xml.etree.ElementTree as ET
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, BinaryIO, Callable, Iterable, Optional, Union

import httpx

from s3proto.bucketconfig import BucketNotification, ObjectLockConfiguration, RetentionRule, VersioningConfiguration
from s3proto.config import ClientConfig
from s3proto.credentials import CredentialsProvider, StaticCredentialsProvider, utc_now
from s3proto.errors import HttpError
from s3proto.listing import decode_objects_page, decode_parts_page, decode_uploads_page, paginate
from s3proto.models import (
    BucketInfo,
    CompleteMultipartUploadResult,
    ListingPage,
    ObjectInfo,
    ObjectItem,
    PartInfo,
    PartItem,
    UploadItem,
    UploadPartResult,
    UploadSession,
)
from s3proto.multipart import MultipartUploadCoordinator, checksums_from_headers, upload_stream
from s3proto.notifications import DEFAULT_EVENTS, NotificationEvent, listen_bucket_notifications
from s3proto.options import (
    META_PREFIX,
    CreateMultipartUploadOptions,
    GetObjectOptions,
    PutObjectOptions,
    UploadPartOptions,
)
from s3proto.pipeline import RequestPipeline, S3Request
from s3proto.query import QueryParams
from s3proto.retry import RetryPolicy
from s3proto.signer import RequestSigner
from s3proto.validation import check_bucket_name, check_object_key
from s3proto.xmlutil import add_text, findall, findtext, new_document, parse_http_date, parse_iso8601, parse_xml, to_bytes

logger = logging.getLogger(__name__)

XML_CONTENT_TYPE = "application/xml"

_EXPIRATION = re.compile(r'expiry-date="(.*?)", rule-id="(.*?)"')
_RESTORE = re.compile(r'ongoing-request="(.*?)"(, expiry-date="(.*?)")?')

# Response headers kept in ObjectInfo.metadata (prefix match, case-insensitive)
PRESERVED_HEADERS = (
    "content-type",
    "cache-control",
    "content-encoding",
    "content-language",
    "content-disposition",
    "x-amz-storage-class",
    "x-amz-object-lock-mode",
    "x-amz-object-lock-retain-until-date",
    "x-amz-object-lock-legal-hold",
    "x-amz-website-redirect-location",
    "x-amz-server-side-encryption",
    "x-amz-tagging-count",
    "x-amz-meta-",
)


def object_info_from_headers(key: str, headers: httpx.Headers) -> ObjectInfo:
    """Decode HEAD/GET response headers into ObjectInfo."""
    metadata = {
        name: value
        for name, value in headers.items()
        if name.lower().startswith(PRESERVED_HEADERS)
    }
    meta_prefix = META_PREFIX.lower()
    user_metadata = {
        name[len(meta_prefix):]: value
        for name, value in metadata.items()
        if name.lower().startswith(meta_prefix)
    }

    info = ObjectInfo(
        key=key,
        etag=headers.get("etag", ""),
        size=int(headers.get("content-length") or 0),
        content_type=headers.get("content-type", "application/octet-stream"),
        last_modified=parse_http_date(headers.get("last-modified")),
        expires=parse_http_date(headers.get("expires")),
        version_id=headers.get("x-amz-version-id"),
        is_delete_marker=headers.get("x-amz-delete-marker") == "true",
        replication_status=headers.get("x-amz-replication-status"),
        metadata=metadata,
        user_metadata=user_metadata,
        user_tag_count=int(headers.get("x-amz-tagging-count") or 0),
        checksums=checksums_from_headers(headers),
    )

    expiration = _EXPIRATION.search(headers.get("x-amz-expiration", ""))
    if expiration:
        info.expiration = parse_http_date(expiration.group(1))
        info.expiration_rule_id = expiration.group(2)

    restore = _RESTORE.search(headers.get("x-amz-restore", ""))
    if restore:
        info.restore_ongoing = restore.group(1) == "true"
        info.restore_expiry = parse_http_date(restore.group(3))
    return info


def _content_md5(body: bytes) -> str:
    return base64.b64encode(hashlib.md5(body).digest()).decode("ascii")


class S3Client:
    """Asynchronous client for an S3-compatible endpoint.

    Use ``build_client`` to create one from a configuration; the client can
    then be used as an async context manager to close the httpx client it
    owns.
    """

    def __init__(self, pipeline: RequestPipeline, owns_http_client: bool = False):
        self.pipeline = pipeline
        self.multipart = MultipartUploadCoordinator(pipeline)
        self._owns_http_client = owns_http_client

    async def aclose(self) -> None:
        if self._owns_http_client:
            await self.pipeline.http_client.aclose()

    async def __aenter__(self) -> "S3Client":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def _execute(self, request: S3Request) -> httpx.Response:
        return await self.pipeline.execute(request)

    # Buckets

    async def list_buckets(self) -> list[BucketInfo]:
        response = await self._execute(S3Request("GET"))
        root = parse_xml(response.content)
        buckets = []
        for container in findall(root, "Buckets"):
            for bucket in findall(container, "Bucket"):
                buckets.append(BucketInfo(
                    name=findtext(bucket, "Name"),
                    creation_date=parse_iso8601(findtext(bucket, "CreationDate")),
                ))
        return buckets

    async def bucket_exists(self, bucket: str) -> bool:
        """HEAD the bucket; a 404 means it does not exist."""
        check_bucket_name(bucket)
        try:
            await self._execute(S3Request("HEAD", bucket))
        except HttpError as e:
            if e.status_code == 404:
                return False
            raise
        return True

    async def create_bucket(self, bucket: str, region: Optional[str] = None, object_lock: bool = False) -> str:
        """Create a bucket and return its ``Location`` header.

        A ``LocationConstraint`` is sent only for regions other than
        ``us-east-1``.
        """
        check_bucket_name(bucket)
        headers = {}
        body = None
        if region and region != "us-east-1":
            root = new_document("CreateBucketConfiguration")
            add_text(root, "LocationConstraint", region)
            body = to_bytes(root)
            headers["Content-Type"] = XML_CONTENT_TYPE
        if object_lock:
            headers["X-Amz-Bucket-Object-Lock-Enabled"] = "true"

        response = await self._execute(S3Request("PUT", bucket, headers=headers, body=body))
        logger.info("Created bucket %s", bucket)
        return response.headers.get("location", "")

    async def delete_bucket(self, bucket: str) -> None:
        check_bucket_name(bucket)
        await self._execute(S3Request("DELETE", bucket))
        logger.info("Deleted bucket %s", bucket)

    # Objects

    async def put_object(
        self,
        bucket: str,
        key: str,
        body: Union[bytes, BinaryIO],
        options: Optional[PutObjectOptions] = None,
    ) -> str:
        """Upload an object in a single request and return its ETag."""
        check_bucket_name(bucket)
        check_object_key(key)
        headers = options.headers() if options else {}
        response = await self._execute(S3Request("PUT", bucket, key, headers=headers, body=body))
        return response.headers.get("etag", "")

    def _object_request(self, method: str, bucket: str, key: str, options: Optional[GetObjectOptions]) -> S3Request:
        check_bucket_name(bucket)
        check_object_key(key)
        options = options or GetObjectOptions()
        return S3Request(method, bucket, key, options.query(), options.headers())

    async def get_object(
        self,
        bucket: str,
        key: str,
        options: Optional[GetObjectOptions] = None,
    ) -> tuple[bytes, ObjectInfo]:
        """Download a whole object (or the requested range) into memory."""
        response = await self._execute(self._object_request("GET", bucket, key, options))
        return response.content, object_info_from_headers(key, response.headers)

    @asynccontextmanager
    async def open_object(
        self,
        bucket: str,
        key: str,
        options: Optional[GetObjectOptions] = None,
    ) -> AsyncIterator[tuple[httpx.Response, ObjectInfo]]:
        """Open an object for streaming; read it with ``response.aiter_bytes()``."""
        request = self._object_request("GET", bucket, key, options)
        async with self.pipeline.open_stream(request) as response:
            yield response, object_info_from_headers(key, response.headers)

    async def head_object(
        self,
        bucket: str,
        key: str,
        options: Optional[GetObjectOptions] = None,
    ) -> ObjectInfo:
        response = await self._execute(self._object_request("HEAD", bucket, key, options))
        return object_info_from_headers(key, response.headers)

    async def delete_object(self, bucket: str, key: str, version_id: Optional[str] = None) -> None:
        check_bucket_name(bucket)
        check_object_key(key)
        await self._execute(S3Request("DELETE", bucket, key, QueryParams().add_if_not_empty("versionId", version_id)))

    # Listings

    def list_objects(
        self,
        bucket: str,
        prefix: str = "",
        recursive: bool = False,
        start_after: Optional[str] = None,
        max_keys: int = 0,
        fetch_owner: bool = False,
    ) -> AsyncIterator[ObjectItem]:
        """List objects with ListObjectsV2.

        Without ``recursive`` the listing is delimited by ``/`` and common
        prefixes are yielded as items with ``is_prefix`` set.
        """
        check_bucket_name(bucket)

        async def fetch(token: Optional[str]) -> ListingPage[ObjectItem]:
            query = QueryParams()
            query.add("list-type", "2")
            query.add_if_not_empty("continuation-token", token)
            if not recursive:
                query.add("delimiter", "/")
            query.add("encoding-type", "url")
            if fetch_owner:
                query.add("fetch-owner", "true")
            if max_keys > 0:
                query.add("max-keys", str(max_keys))
            query.add("prefix", prefix)
            query.add_if_not_empty("start-after", start_after)
            response = await self._execute(S3Request("GET", bucket, query=query))
            return decode_objects_page(response.content)

        return paginate(fetch)

    def list_parts(self, bucket: str, key: str, upload_id: str, max_parts: int = 0) -> AsyncIterator[PartItem]:
        check_bucket_name(bucket)
        check_object_key(key)

        async def fetch(marker: Optional[str]) -> ListingPage[PartItem]:
            query = QueryParams()
            if max_parts > 0:
                query.add("max-parts", str(max_parts))
            query.add_if_not_empty("part-number-marker", marker)
            query.add("uploadId", upload_id)
            response = await self._execute(S3Request("GET", bucket, key, query))
            return decode_parts_page(response.content)

        return paginate(fetch)

    def list_multipart_uploads(
        self,
        bucket: str,
        prefix: str = "",
        delimiter: Optional[str] = None,
        max_uploads: int = 0,
    ) -> AsyncIterator[UploadItem]:
        check_bucket_name(bucket)

        async def fetch(markers: Optional[tuple[Optional[str], Optional[str]]]) -> ListingPage[UploadItem]:
            key_marker, upload_id_marker = markers or (None, None)
            query = QueryParams()
            query.add("uploads")
            query.add_if_not_empty("delimiter", delimiter)
            query.add("encoding-type", "url")
            query.add_if_not_empty("key-marker", key_marker)
            if max_uploads > 0:
                query.add("max-uploads", str(max_uploads))
            query.add_if_not_empty("prefix", prefix)
            query.add_if_not_empty("upload-id-marker", upload_id_marker)
            response = await self._execute(S3Request("GET", bucket, query=query))
            return decode_uploads_page(response.content)

        return paginate(fetch)

    # Multipart

    async def create_multipart_upload(
        self,
        bucket: str,
        key: str,
        options: Optional[CreateMultipartUploadOptions] = None,
    ) -> UploadSession:
        return await self.multipart.create(bucket, key, options)

    async def upload_part(
        self,
        session: UploadSession,
        part_number: int,
        data: Union[bytes, BinaryIO],
        options: Optional[UploadPartOptions] = None,
        is_last: bool = True,
    ) -> UploadPartResult:
        """Upload one part; pass ``is_last=False`` to enforce the minimum part size."""
        return await self.multipart.upload_part(session, part_number, data, options, is_last=is_last)

    async def complete_multipart_upload(
        self,
        session: UploadSession,
        parts: Optional[list[PartInfo]] = None,
    ) -> CompleteMultipartUploadResult:
        return await self.multipart.complete(session, parts)

    async def abort_multipart_upload(self, session: UploadSession) -> None:
        await self.multipart.abort(session)

    async def upload_stream(
        self,
        bucket: str,
        key: str,
        stream: BinaryIO,
        size: Optional[int] = None,
        part_size: Optional[int] = None,
        concurrency: int = 4,
        options: Optional[CreateMultipartUploadOptions] = None,
    ) -> CompleteMultipartUploadResult:
        """Upload a stream as a multipart upload; see ``multipart.upload_stream``."""
        return await upload_stream(self.multipart, bucket, key, stream, size, part_size, concurrency, options)

    # Bucket configuration

    async def _get_config(self, bucket: str, subresource: str) -> ET.Element:
        check_bucket_name(bucket)
        response = await self._execute(S3Request("GET", bucket, query=QueryParams().add(subresource)))
        return parse_xml(response.content)

    async def _put_config(self, bucket: str, subresource: str, document: ET.Element) -> None:
        check_bucket_name(bucket)
        body = to_bytes(document)
        headers = {"Content-Type": XML_CONTENT_TYPE, "Content-MD5": _content_md5(body)}
        await self._execute(S3Request("PUT", bucket, query=QueryParams().add(subresource), headers=headers, body=body))

    async def get_bucket_notifications(self, bucket: str) -> BucketNotification:
        return BucketNotification.from_xml(await self._get_config(bucket, "notification"))

    async def set_bucket_notifications(self, bucket: str, notification: BucketNotification) -> None:
        await self._put_config(bucket, "notification", notification.to_xml())

    async def remove_all_bucket_notifications(self, bucket: str) -> None:
        await self.set_bucket_notifications(bucket, BucketNotification())

    async def get_bucket_versioning(self, bucket: str) -> VersioningConfiguration:
        return VersioningConfiguration.from_xml(await self._get_config(bucket, "versioning"))

    async def set_bucket_versioning(self, bucket: str, configuration: VersioningConfiguration) -> None:
        await self._put_config(bucket, "versioning", configuration.to_xml())

    async def get_object_lock_configuration(self, bucket: str) -> ObjectLockConfiguration:
        return ObjectLockConfiguration.from_xml(await self._get_config(bucket, "object-lock"))

    async def set_object_lock_configuration(self, bucket: str, default_retention: Optional[RetentionRule]) -> None:
        configuration = ObjectLockConfiguration(default_retention=default_retention)
        await self._put_config(bucket, "object-lock", configuration.to_xml())

    async def remove_object_lock_configuration(self, bucket: str) -> None:
        """Keep object lock enabled but drop the default retention rule."""
        await self.set_object_lock_configuration(bucket, None)

    # Notifications

    def listen_bucket_notifications(
        self,
        bucket: str,
        events: Iterable[str] = DEFAULT_EVENTS,
        prefix: str = "",
        suffix: str = "",
    ) -> AsyncIterator[NotificationEvent]:
        """Stream bucket events; iterate with ``async for``."""
        return listen_bucket_notifications(self.pipeline, bucket, events, prefix, suffix)


def build_client(
    config: ClientConfig,
    http_client: Optional[httpx.AsyncClient] = None,
    credentials_provider: Optional[CredentialsProvider] = None,
    clock: Callable[[], datetime] = utc_now,
    rng: Optional[random.Random] = None,
) -> S3Client:
    """Build an S3Client for the given configuration.

    Args:
        config: Endpoint, credentials, region, retry and timeout settings.
        http_client: Optional httpx client to use; when omitted the client
                     creates (and closes) its own.
        credentials_provider: Overrides the static credentials in ``config``.
        clock: Signing clock.
        rng: Random source for retry jitter.

    Returns:
        A ready-to-use S3Client.
    """
    owns_http_client = http_client is None
    if http_client is None:
        http_client = httpx.AsyncClient(timeout=config.timeout)
    if credentials_provider is None:
        credentials_provider = StaticCredentialsProvider(config.access_key, config.secret_key, config.session_token)

    pipeline = RequestPipeline(
        http_client=http_client,
        endpoint_url=config.endpoint_url,
        signer=RequestSigner(credentials_provider, clock),
        retry_policy=RetryPolicy(config.max_retries, config.retry_median_delay, rng),
        region=config.region,
    )
    return S3Client(pipeline, owns_http_client=owns_http_client)
