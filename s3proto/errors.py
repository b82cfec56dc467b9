"""Exception hierarchy for the S3 protocol engine.

Retries are contained in the request pipeline, so callers only ever see
one of these after classification:

- ValidationError: bad caller input, raised before any network call
- HttpError: a non-2xx response, with the parsed server error when present
- TransportError: a connection-level failure that outlived its retries
- InvalidResponseError: a 2xx response whose body could not be decoded

Cancellation is plain ``asyncio.CancelledError`` and is never wrapped.
"""

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from s3proto.models import ErrorResponse


class S3Error(Exception):
    """Base class for all errors raised by s3proto."""


class ValidationError(S3Error, ValueError):
    """Raised when caller input is rejected before reaching the network."""


class InvalidResponseError(S3Error):
    """Raised when a successful response carries an undecodable body."""


class HttpError(S3Error):
    """Raised when the server answers with a non-success status code."""

    def __init__(
        self,
        method: str,
        url: str,
        status_code: int,
        reason: str = "",
        error_response: Optional["ErrorResponse"] = None,
        attempts: int = 1,
    ):
        self.method = method
        self.url = url
        self.status_code = status_code
        self.reason = reason
        self.error_response = error_response
        self.attempts = attempts
        super().__init__(self._format_message())

    @property
    def code(self) -> Optional[str]:
        """Server error code (e.g. ``NoSuchKey``), if the body was parsed."""
        return self.error_response.code if self.error_response else None

    def _format_message(self) -> str:
        message = (
            f"{self.method} {self.url} returned HTTP status-code "
            f"{self.status_code} ({self.reason})"
        )
        if self.error_response is not None and self.error_response.code:
            message += f": {self.error_response.code}: {self.error_response.message}"
        return message


class TransportError(S3Error):
    """Raised when the request could not be delivered after all retries."""

    def __init__(self, method: str, url: str, attempts: int, message: str):
        super().__init__(f"{method} {url} failed after {attempts} attempt(s): {message}")
        self.method = method
        self.url = url
        self.attempts = attempts
