"""AWS Signature Version 4 request signing.

Signing happens in three steps:

1. Canonicalize the request (method, URI, sorted query, signed headers,
   payload hash) and hash it with SHA-256.
2. Build the string-to-sign from the timestamp, the credential scope and
   that hash.
3. Derive the signing key by HMAC chaining the secret over the scope date,
   region, service and ``aws4_request``, then HMAC the string-to-sign.

The payload hash and timestamp are read from the ``X-Amz-Content-Sha256``
and ``X-Amz-Date`` headers when present, so re-signing a request that
already carries them reproduces the same inputs.
"""

import hashlib
import hmac
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Iterable, Optional

import httpx

from s3proto.credentials import Credentials, CredentialsProvider, utc_now

logger = logging.getLogger(__name__)

ALGORITHM = "AWS4-HMAC-SHA256"
TIMESTAMP_FORMAT = "%Y%m%dT%H%M%SZ"
EMPTY_SHA256 = "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"

_MULTI_SPACE = re.compile(r"\s+")


@dataclass(frozen=True)
class CanonicalRequest:
    """The canonical form of a request, as hashed for SigV4."""

    method: str
    canonical_uri: str
    canonical_query_string: str
    canonical_headers: str
    signed_headers: str
    payload_hash: str

    def __str__(self) -> str:
        return "\n".join([
            self.method,
            self.canonical_uri,
            self.canonical_query_string,
            self.canonical_headers,
            self.signed_headers,
            self.payload_hash,
        ])

    def hexdigest(self) -> str:
        return hashlib.sha256(str(self).encode("utf-8")).hexdigest()


def canonical_query_string(query: str) -> str:
    """Sort raw ``name=value`` pairs by name only.

    ``sorted`` is stable, so repeated names keep their original order.
    Pairs without ``=`` are normalized to ``name=``.
    """
    if query.startswith("?"):
        query = query[1:]
    items = [item if "=" in item else f"{item}=" for item in query.split("&") if item]
    return "&".join(sorted(items, key=lambda item: item.split("=", 1)[0]))


def is_signed_header(name: str) -> bool:
    """Headers beyond ``host`` that take part in the signature."""
    return name == "content-type" or name.startswith("x-amz-")


def canonical_header_value(value: str) -> str:
    return _MULTI_SPACE.sub(" ", value.strip())


def build_canonical_request(
    method: str,
    path: str,
    query: str,
    host: str,
    headers: Iterable[tuple[str, str]],
    payload_hash: str,
) -> CanonicalRequest:
    """Build the canonical request from already-encoded request parts.

    Args:
        method: HTTP method.
        path: Percent-encoded path exactly as sent on the wire.
        query: Raw query string exactly as sent on the wire.
        host: Value of the Host header.
        headers: (name, value) pairs; repeated names are comma-joined.
        payload_hash: Lowercase hex SHA-256 of the body.
    """
    collected: dict[str, list[str]] = {"host": [host]}
    for name, value in headers:
        name = name.lower()
        if is_signed_header(name):
            collected.setdefault(name, []).append(canonical_header_value(value))

    names = sorted(collected)
    canonical_headers = "".join(f"{name}:{','.join(collected[name])}\n" for name in names)

    return CanonicalRequest(
        method=method.upper(),
        canonical_uri=path or "/",
        canonical_query_string=canonical_query_string(query),
        canonical_headers=canonical_headers,
        signed_headers=";".join(names),
        payload_hash=payload_hash,
    )


def canonical_request_for(request: httpx.Request, payload_hash: str) -> CanonicalRequest:
    """Canonicalize an httpx request using its on-the-wire path and headers."""
    raw_path = request.url.raw_path.decode("ascii")
    path, _, query = raw_path.partition("?")
    host = request.headers.get("host") or request.url.netloc.decode("ascii")
    headers = [(k, v) for k, v in request.headers.multi_items() if k.lower() != "host"]
    return build_canonical_request(request.method, path, query, host, headers, payload_hash)


def _hmac(key: bytes, msg: str) -> bytes:
    return hmac.new(key, msg.encode("utf-8"), hashlib.sha256).digest()


def derive_signing_key(secret_key: str, scope_date: str, region: str, service: str) -> bytes:
    """Derive the SigV4 signing key: kSecret -> kDate -> kRegion -> kService -> kSigning."""
    k_date = _hmac(f"AWS4{secret_key}".encode("utf-8"), scope_date)
    k_region = _hmac(k_date, region)
    k_service = _hmac(k_region, service)
    return _hmac(k_service, "aws4_request")


def credential_scope(timestamp: str, region: str, service: str) -> str:
    return f"{timestamp[:8]}/{region}/{service}/aws4_request"


def string_to_sign(timestamp: str, scope: str, canonical_request_hash: str) -> str:
    return f"{ALGORITHM}\n{timestamp}\n{scope}\n{canonical_request_hash}"


def compute_authorization(
    canonical_request: CanonicalRequest,
    credentials: Optional[Credentials],
    region: str,
    service: str,
    timestamp: str,
) -> str:
    """Compute the Authorization parameter (everything after the algorithm).

    Raises:
        ValueError: If ``credentials`` is missing.
    """
    if credentials is None:
        raise ValueError("Cannot sign a request without credentials")

    logger.debug("Canonical request:\n%s", canonical_request)
    scope = credential_scope(timestamp, region, service)
    to_sign = string_to_sign(timestamp, scope, canonical_request.hexdigest())
    logger.debug("String to sign:\n%s", to_sign)

    signing_key = derive_signing_key(credentials.secret_key, timestamp[:8], region, service)
    signature = hmac.new(signing_key, to_sign.encode("utf-8"), hashlib.sha256).hexdigest()
    logger.debug("Signature: %s", signature)

    return (
        f"Credential={credentials.access_key}/{scope}, "
        f"SignedHeaders={canonical_request.signed_headers}, "
        f"Signature={signature}"
    )


def format_timestamp(moment: datetime) -> str:
    """Format a UTC datetime as ``yyyyMMdd'T'HHmmss'Z'``."""
    return moment.strftime(TIMESTAMP_FORMAT)


class RequestSigner:
    """Signs httpx requests in place with SigV4.

    Args:
        credentials_provider: Source of credentials, queried per request.
        clock: Returns the current UTC time; only used when the request
               carries no X-Amz-Date header.
    """

    def __init__(
        self,
        credentials_provider: CredentialsProvider,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.credentials_provider = credentials_provider
        self.clock = clock

    async def sign(self, request: httpx.Request, region: str, service: str = "s3") -> None:
        """Attach the Authorization (and session token) headers."""
        credentials = await self.credentials_provider.get_credentials()
        if credentials is None:
            raise ValueError("Credentials provider returned no credentials")

        timestamp = request.headers.get("x-amz-date")
        if timestamp is None:
            timestamp = format_timestamp(self.clock())
            request.headers["X-Amz-Date"] = timestamp

        payload_hash = request.headers.get("x-amz-content-sha256")
        if payload_hash is None:
            payload_hash = hashlib.sha256(request.content).hexdigest()

        # The token is an x-amz-* header, so it is signed along with the rest.
        if credentials.session_token:
            request.headers["X-Amz-Security-Token"] = credentials.session_token

        canonical = canonical_request_for(request, payload_hash)
        authorization = compute_authorization(canonical, credentials, region, service, timestamp)
        request.headers["Authorization"] = f"{ALGORITHM} {authorization}"
