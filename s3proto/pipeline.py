"""Request execution: hash, stamp, sign, send, classify, retry.

Every S3 call goes through ``RequestPipeline``. An attempt:

1. hashes the body (rewinding file bodies to where they started),
2. stamps a fresh ``X-Amz-Date`` and the payload hash,
3. signs the request,
4. sends it headers-first (``stream=True``),
5. on a non-2xx status, reads and parses the ``<Error>`` body, releases the
   connection and asks the retry policy what to do.

Only the final outcome leaves the pipeline: a successful response, an
``HttpError`` or a ``TransportError``. ``asyncio.CancelledError`` is never
caught, so cancelling the calling task stops the loop at the current send
or backoff sleep.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Optional

import httpx

from s3proto.errors import HttpError, TransportError
from s3proto.query import QueryParams, encode_path
from s3proto.retry import Outcome, RetryPolicy
from s3proto.signer import RequestSigner, format_timestamp
from s3proto.streams import Body, aiter_body, hash_payload
from s3proto.xmlutil import parse_error_response

logger = logging.getLogger(__name__)


@dataclass
class S3Request:
    """Description of one logical S3 call.

    ``body`` may be bytes or a seekable binary file; file bodies are sent
    from their current position.
    """

    method: str
    bucket: Optional[str] = None
    key: Optional[str] = None
    query: QueryParams = field(default_factory=QueryParams)
    headers: dict[str, str] = field(default_factory=dict)
    body: Body = None

    @property
    def path(self) -> str:
        if not self.bucket:
            return "/"
        if self.key is None:
            return f"/{self.bucket}"
        return f"/{self.bucket}/{encode_path(self.key)}"


class RequestPipeline:
    """Executes ``S3Request`` descriptions against one endpoint.

    The pipeline keeps no per-call state and is safe to share between
    concurrent operations. The httpx client (and its connection pool) is
    owned by the caller.

    Args:
        http_client: Transport used to send requests.
        endpoint_url: Base URL such as ``http://localhost:9000``.
        signer: SigV4 signer; its clock stamps ``X-Amz-Date``.
        retry_policy: Retry classification and backoff.
        region: Signing region.
        service: Signing service name.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        endpoint_url: str,
        signer: RequestSigner,
        retry_policy: Optional[RetryPolicy] = None,
        region: str = "us-east-1",
        service: str = "s3",
    ):
        self.http_client = http_client
        self.endpoint_url = endpoint_url.rstrip("/")
        self.signer = signer
        self.retry_policy = retry_policy or RetryPolicy()
        self.region = region
        self.service = service

    def url_for(self, s3_request: S3Request) -> str:
        return f"{self.endpoint_url}{s3_request.path}{s3_request.query}"

    async def _build(self, s3_request: S3Request, body_start: Optional[int]) -> httpx.Request:
        body = s3_request.body
        if body_start is not None:
            body.seek(body_start)
        payload_hash, length = hash_payload(body)

        headers = dict(s3_request.headers)
        headers["X-Amz-Date"] = format_timestamp(self.signer.clock())
        headers["X-Amz-Content-Sha256"] = payload_hash
        headers["Content-Length"] = str(length)

        if body is None:
            content = b""
        elif isinstance(body, (bytes, bytearray)):
            content = bytes(body)
        else:
            content = aiter_body(body, length)

        request = self.http_client.build_request(
            s3_request.method, self.url_for(s3_request), headers=headers, content=content
        )
        await self.signer.sign(request, self.region, self.service)
        return request

    async def _attempt(self, request: httpx.Request, read_body: bool) -> tuple[Outcome, Optional[httpx.Response], bytes]:
        """Send once; returns the outcome, the response if still open and any error body."""
        try:
            response = await self.http_client.send(request, stream=True)
        except httpx.TransportError as e:
            return Outcome(error=e), None, b""

        release = True
        try:
            if response.is_success and not read_body:
                release = False
                return Outcome(status_code=response.status_code), response, b""
            content = await response.aread()
        except httpx.TransportError as e:
            return Outcome(error=e), None, b""
        finally:
            if release:
                await response.aclose()

        return Outcome(status_code=response.status_code), response, content

    async def _run(self, s3_request: S3Request, read_body: bool) -> httpx.Response:
        body = s3_request.body
        body_start = None
        if body is not None and not isinstance(body, (bytes, bytearray)):
            body_start = body.tell()

        attempt = 0
        while True:
            attempt += 1
            request = await self._build(s3_request, body_start)
            outcome, response, error_body = await self._attempt(request, read_body)

            if outcome.is_success:
                return response

            decision = self.retry_policy.classify(attempt, outcome)
            if outcome.error is not None:
                failure = f"{type(outcome.error).__name__}: {outcome.error}"
            else:
                failure = f"HTTP {outcome.status_code}"

            if not decision.should_retry:
                logger.debug("%s %s failed on attempt %d: %s", request.method, request.url, attempt, failure)
                if outcome.error is not None:
                    raise TransportError(
                        request.method, str(request.url), attempt, str(outcome.error) or type(outcome.error).__name__
                    ) from outcome.error
                raise HttpError(
                    request.method,
                    str(request.url),
                    response.status_code,
                    response.reason_phrase,
                    parse_error_response(error_body),
                    attempts=attempt,
                )

            logger.warning(
                "%s %s failed on attempt %d (%s), retrying in %.2fs",
                request.method,
                request.url,
                attempt,
                failure,
                decision.delay,
            )
            await asyncio.sleep(decision.delay)

    async def execute(self, s3_request: S3Request) -> httpx.Response:
        """Execute a request and return the fully read, closed response.

        Raises:
            HttpError: If the final attempt returned a non-2xx status.
            TransportError: If the final attempt failed at the transport level.
        """
        return await self._run(s3_request, read_body=True)

    @asynccontextmanager
    async def open_stream(self, s3_request: S3Request) -> AsyncIterator[httpx.Response]:
        """Execute a request and yield the response with its body unread.

        Retries cover everything up to the response headers; once the
        response is yielded, body reads are the caller's. The connection is
        released when the context exits, including on cancellation.
        """
        response = await self._run(s3_request, read_body=False)
        try:
            yield response
        finally:
            await response.aclose()
