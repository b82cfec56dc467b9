"""
s3proto: an asynchronous client for S3-compatible object storage.

Signs requests with AWS Signature V4, retries transient failures with
decorrelated jitter, coordinates multipart uploads, walks paginated
listings and decodes MinIO bucket notification streams.
"""

__version__ = "1.0.0"

from s3proto.config import ClientConfig, ConfigError, load_config
from s3proto.errors import HttpError, InvalidResponseError, S3Error, TransportError, ValidationError
from s3proto.s3_client import S3Client, build_client

__all__ = [
    "ClientConfig",
    "ConfigError",
    "HttpError",
    "InvalidResponseError",
    "S3Client",
    "S3Error",
    "TransportError",
    "ValidationError",
    "build_client",
    "load_config",
    "__version__",
]
