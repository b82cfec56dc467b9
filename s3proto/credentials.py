"""Credential providers and the signing clock.

The signer asks a provider for credentials on every request, so providers
may rotate them freely. Only the static and environment strategies live
here; anything that exchanges tokens with a remote service is expected to
implement ``CredentialsProvider`` itself.
"""

import os
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Protocol

from s3proto.config import ENV_ACCESS_KEYS, ENV_SECRET_KEYS, ConfigError, first_env


@dataclass(frozen=True)
class Credentials:
    """Access key pair with an optional session token."""

    access_key: str
    secret_key: str
    session_token: Optional[str] = None

    def __repr__(self) -> str:
        return f"Credentials(access_key={self.access_key!r}, secret_key='***')"


class CredentialsProvider(Protocol):
    """Anything that can hand out credentials for a request."""

    async def get_credentials(self) -> Credentials:
        ...


class StaticCredentialsProvider:
    """Provider returning the same credentials for every request."""

    def __init__(
        self,
        access_key: str,
        secret_key: str,
        session_token: Optional[str] = None,
    ):
        self._credentials = Credentials(access_key, secret_key, session_token)

    async def get_credentials(self) -> Credentials:
        return self._credentials


class EnvironmentCredentialsProvider:
    """Provider reading credentials from environment variables on demand.

    Looks at S3PROTO_ACCESS_KEY first, then the MinIO root user, MinIO and
    AWS access key variables.
    """

    async def get_credentials(self) -> Credentials:
        access_key = first_env(ENV_ACCESS_KEYS)
        secret_key = first_env(ENV_SECRET_KEYS)
        if not access_key or not secret_key:
            raise ConfigError("No access key or secret key found in environment")
        return Credentials(access_key, secret_key, os.environ.get("AWS_SESSION_TOKEN") or None)


def utc_now() -> datetime:
    """Default signing clock."""
    return datetime.now(timezone.utc)
