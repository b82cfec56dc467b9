"""Multipart upload lifecycle management.

Handles the lifecycle of S3 multipart uploads:
- Initiate upload (CreateMultipartUpload)
- Upload parts, concurrently and in any order
- Track acknowledged parts and their ETags
- Complete (parts sorted by part number) or abort

The coordinator never aborts on its own; ``upload_stream`` is the one
place that applies a whole-object policy (bounded concurrency, abort on
failure) on top of it.
"""

import asyncio
import logging
from typing import BinaryIO, Optional, Sequence, Union

from s3proto.errors import HttpError, InvalidResponseError, S3Error, ValidationError
from s3proto.models import (
    ChecksumAlgorithm,
    CompleteMultipartUploadResult,
    PartInfo,
    UploadPartResult,
    UploadSession,
)
from s3proto.options import CreateMultipartUploadOptions, UploadPartOptions, encode_checksum
from s3proto.pipeline import RequestPipeline, S3Request
from s3proto.query import QueryParams
from s3proto.streams import iter_parts
from s3proto.validation import (
    MAX_PARTS,
    MIN_PART_SIZE,
    check_bucket_name,
    check_object_key,
    check_object_size,
    check_part_number,
    check_part_size,
    optimal_part_size,
)
from s3proto.xmlutil import (
    add_text,
    find,
    findtext,
    new_document,
    parse_error_response,
    parse_http_date,
    parse_xml,
    to_bytes,
)

logger = logging.getLogger(__name__)

XML_CONTENT_TYPE = "application/xml"


def checksums_from_headers(headers) -> dict[ChecksumAlgorithm, str]:
    """Collect ``x-amz-checksum-*`` response headers by algorithm."""
    return {alg: headers[alg.header] for alg in ChecksumAlgorithm if alg.header in headers}


def checksums_from_element(element) -> dict[ChecksumAlgorithm, str]:
    """Collect ``Checksum<ALG>`` child elements by algorithm."""
    found = {}
    for alg in ChecksumAlgorithm:
        child = find(element, alg.element)
        if child is not None and child.text:
            found[alg] = child.text
    return found


def build_completion_manifest(parts: Sequence[PartInfo]) -> bytes:
    """Serialize parts (already sorted) into the CompleteMultipartUpload body.

    The request body reuses the ``CompleteMultipartUploadResult`` element
    name. Each part carries its own part number and ETag, plus a
    ``Checksum<ALG>`` element when a checksum was recorded for it.
    """
    root = new_document("CompleteMultipartUploadResult")
    for part in parts:
        element = add_text(root, "Part")
        add_text(element, "PartNumber", str(part.part_number))
        add_text(element, "ETag", part.etag)
        if part.checksum_algorithm is not None and part.checksum is not None:
            add_text(
                element,
                part.checksum_algorithm.element,
                encode_checksum(part.checksum_algorithm, part.checksum),
            )
    return to_bytes(root)


def _ordered_parts(parts: Sequence[PartInfo]) -> list[PartInfo]:
    if not parts:
        raise ValidationError("Cannot complete a multipart upload without parts")
    seen = set()
    for part in parts:
        check_part_number(part.part_number)
        if not part.etag:
            raise ValidationError(f"Part {part.part_number} has no ETag")
        if part.part_number in seen:
            raise ValidationError(f"Part {part.part_number} is listed more than once")
        seen.add(part.part_number)
    return sorted(parts, key=lambda part: part.part_number)


class MultipartUploadCoordinator:
    """Sequences CreateMultipartUpload, UploadPart and Complete/Abort.

    Parts may be uploaded concurrently; each acknowledged part is recorded
    on the session under its part number, replacing any earlier upload of
    the same number.
    """

    def __init__(self, pipeline: RequestPipeline):
        self.pipeline = pipeline

    async def create(
        self,
        bucket: str,
        key: str,
        options: Optional[CreateMultipartUploadOptions] = None,
    ) -> UploadSession:
        """Initiate a new multipart upload.

        Returns:
            A session holding the upload ID and no parts.
        """
        check_bucket_name(bucket)
        check_object_key(key)

        headers = options.headers() if options else {}
        response = await self.pipeline.execute(
            S3Request("POST", bucket, key, QueryParams().add("uploads"), headers)
        )
        root = parse_xml(response.content)
        session = UploadSession(
            bucket=findtext(root, "Bucket", bucket),
            key=findtext(root, "Key", key),
            upload_id=findtext(root, "UploadId"),
            abort_date=parse_http_date(response.headers.get("x-amz-abort-date")),
            abort_rule_id=response.headers.get("x-amz-abort-rule-id"),
        )
        if not session.upload_id:
            raise InvalidResponseError(f"Server returned no upload ID for {bucket}/{key}")
        logger.info("Initiated multipart upload %s for %s/%s", session.upload_id, bucket, key)
        return session

    async def upload_part(
        self,
        session: UploadSession,
        part_number: int,
        data: Union[bytes, BinaryIO],
        options: Optional[UploadPartOptions] = None,
        is_last: bool = True,
    ) -> UploadPartResult:
        """Upload one part and record it on the session.

        Args:
            session: Session returned by ``create``.
            part_number: 1-based part number (at most 10000).
            data: Part contents as bytes or a seekable binary file.
            options: Optional checksum, Content-MD5 and SSE-C settings.
            is_last: Pass False to enforce the minimum part size.

        Returns:
            The ETag and any checksums echoed by the server.
        """
        check_part_number(part_number)
        if isinstance(data, (bytes, bytearray)):
            check_part_size(len(data), is_last=is_last)

        query = QueryParams()
        query.add("partNumber", str(part_number))
        query.add("uploadId", session.upload_id)
        headers = options.headers() if options else {}

        response = await self.pipeline.execute(
            S3Request("PUT", session.bucket, session.key, query, headers, data)
        )
        result = UploadPartResult(
            etag=response.headers.get("etag", ""),
            checksums=checksums_from_headers(response.headers),
        )

        checksum_algorithm = options.checksum_algorithm if options else None
        checksum = options.checksum if options else None
        session.record_part(PartInfo(part_number, result.etag, checksum_algorithm, checksum))
        logger.debug("Uploaded part %d of %s (ETag %s)", part_number, session.upload_id, result.etag)
        return result

    async def complete(
        self,
        session: UploadSession,
        parts: Optional[Sequence[PartInfo]] = None,
    ) -> CompleteMultipartUploadResult:
        """Complete the upload.

        Args:
            session: The session to complete.
            parts: Parts to submit; defaults to the parts recorded on the
                   session. They are sent sorted by part number.

        Raises:
            ValidationError: If there are no parts, before any request.
            HttpError: If the server rejects the manifest, including an
                       ``<Error>`` document returned with a 200 status.
        """
        ordered = _ordered_parts(session.sorted_parts() if parts is None else list(parts))
        request = S3Request(
            "POST",
            session.bucket,
            session.key,
            QueryParams().add("uploadId", session.upload_id),
            {"Content-Type": XML_CONTENT_TYPE},
            build_completion_manifest(ordered),
        )
        response = await self.pipeline.execute(request)

        error = parse_error_response(response.content)
        if error is not None:
            raise HttpError(
                request.method,
                self.pipeline.url_for(request),
                response.status_code,
                response.reason_phrase,
                error,
            )

        root = parse_xml(response.content)
        logger.info("Completed multipart upload %s with %d part(s)", session.upload_id, len(ordered))
        return CompleteMultipartUploadResult(
            location=findtext(root, "Location"),
            bucket=findtext(root, "Bucket"),
            key=findtext(root, "Key"),
            etag=findtext(root, "ETag"),
            checksums=checksums_from_element(root),
        )

    async def abort(self, session: UploadSession) -> None:
        """Abort the upload, discarding every part uploaded so far."""
        await self.pipeline.execute(
            S3Request("DELETE", session.bucket, session.key, QueryParams().add("uploadId", session.upload_id))
        )
        logger.info("Aborted multipart upload %s", session.upload_id)


def _raise_failed(tasks: list) -> None:
    for task in tasks:
        if task.done() and not task.cancelled() and task.exception() is not None:
            raise task.exception()


async def upload_stream(
    coordinator: MultipartUploadCoordinator,
    bucket: str,
    key: str,
    stream: BinaryIO,
    size: Optional[int] = None,
    part_size: Optional[int] = None,
    concurrency: int = 4,
    options: Optional[CreateMultipartUploadOptions] = None,
) -> CompleteMultipartUploadResult:
    """Upload a whole stream as a multipart upload.

    At most ``concurrency`` parts are in flight (and buffered) at a time.
    If any part fails, outstanding parts are cancelled, the session is
    aborted and the original error is re-raised.

    Args:
        coordinator: Coordinator to drive.
        bucket: Target bucket.
        key: Target object key.
        stream: Binary stream positioned at the start of the data.
        size: Total size when known; enables validation before any upload.
        part_size: Size of every part but the last. Defaults to the
                   smallest valid size for ``size``.
        concurrency: Maximum number of concurrent part uploads.
        options: Options for CreateMultipartUpload.
    """
    if concurrency < 1:
        raise ValidationError("concurrency must be at least 1")
    if size is not None:
        check_object_size(size)
    if part_size is None:
        part_size = optimal_part_size(size) if size is not None else MIN_PART_SIZE
    if size is not None and size > part_size:
        check_part_size(part_size)
        if -(-size // part_size) > MAX_PARTS:
            raise ValidationError(f"{size} bytes in {part_size}-byte parts exceeds {MAX_PARTS} parts")

    session = await coordinator.create(bucket, key, options)
    semaphore = asyncio.Semaphore(concurrency)
    tasks: list[asyncio.Task] = []

    async def upload(part_number: int, data: bytes) -> None:
        try:
            await coordinator.upload_part(session, part_number, data)
        finally:
            semaphore.release()

    try:
        for part_number, data in iter_parts(stream, part_size, size):
            if part_number > MAX_PARTS:
                raise ValidationError(f"Stream needs more than {MAX_PARTS} parts of {part_size} bytes")
            if part_number == 2:
                check_part_size(part_size)
            await semaphore.acquire()
            _raise_failed(tasks)
            tasks.append(asyncio.ensure_future(upload(part_number, data)))
        await asyncio.gather(*tasks)
        return await coordinator.complete(session)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        try:
            await coordinator.abort(session)
        except S3Error as e:
            logger.warning("Failed to abort multipart upload %s: %s", session.upload_id, e)
        raise
