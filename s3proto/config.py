"""Configuration loading for the S3 client.

Supports two configuration sources:
1. Environment variables (for CI/CD) - takes priority
2. A JSON file (for local development)

Environment Variable Format:
    S3PROTO_ENDPOINT=https://play.min.io
    S3PROTO_REGION=us-east-1              (optional)
    S3PROTO_ACCESS_KEY=xxx                (or MINIO_ROOT_USER / AWS_ACCESS_KEY_ID)
    S3PROTO_SECRET_KEY=xxx                (or MINIO_ROOT_PASSWORD / AWS_SECRET_ACCESS_KEY)
    AWS_SESSION_TOKEN=xxx                 (optional)
    S3PROTO_MAX_RETRIES=5                 (optional)
    S3PROTO_TIMEOUT=60                    (optional, seconds)

JSON Format:
    {
        "endpoint_url": "https://play.min.io",
        "access_key": "xxx",
        "secret_key": "xxx",
        "region": "us-east-1"
    }
"""

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

DEFAULT_CONFIG_PATH = "s3proto.json"
DEFAULT_REGION = "us-east-1"


class ConfigError(Exception):
    """Raised when configuration loading fails."""

    pass


@dataclass
class ClientConfig:
    """Connection settings for an S3-compatible endpoint."""

    endpoint_url: str
    access_key: str
    secret_key: str
    session_token: Optional[str] = None
    region: str = DEFAULT_REGION
    max_retries: int = 5
    retry_median_delay: float = 0.25
    timeout: float = 60.0


# Required fields for a client configuration
REQUIRED_FIELDS = [
    "endpoint_url",
    "access_key",
    "secret_key",
]

ENV_ACCESS_KEYS = ["S3PROTO_ACCESS_KEY", "MINIO_ROOT_USER", "MINIO_ACCESS_KEY", "AWS_ACCESS_KEY_ID"]
ENV_SECRET_KEYS = ["S3PROTO_SECRET_KEY", "MINIO_ROOT_PASSWORD", "MINIO_SECRET_KEY", "AWS_SECRET_ACCESS_KEY"]


def _number(name: str, value: Any, kind: type) -> Any:
    try:
        return kind(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid value for '{name}': {value!r}") from e


def _build(data: dict[str, Any]) -> ClientConfig:
    for field in REQUIRED_FIELDS:
        if not data.get(field):
            raise ConfigError(f"Missing required field '{field}'")

    config = ClientConfig(
        endpoint_url=data["endpoint_url"],
        access_key=data["access_key"],
        secret_key=data["secret_key"],
        session_token=data.get("session_token") or None,
        region=data.get("region") or DEFAULT_REGION,
    )
    if data.get("max_retries") is not None:
        config.max_retries = _number("max_retries", data["max_retries"], int)
    if data.get("retry_median_delay") is not None:
        config.retry_median_delay = _number("retry_median_delay", data["retry_median_delay"], float)
    if data.get("timeout") is not None:
        config.timeout = _number("timeout", data["timeout"], float)
    if config.max_retries < 0:
        raise ConfigError("'max_retries' must not be negative")
    return config


def load_from_json(config_path: str) -> ClientConfig:
    """Load the client configuration from a JSON file.

    Args:
        config_path: Path to the JSON configuration file.

    Returns:
        The parsed ClientConfig.

    Raises:
        ConfigError: If the file doesn't exist, contains invalid JSON,
                    or is missing required fields.
    """
    path = Path(config_path)

    if not path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in config file: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError("Config file must contain a JSON object")

    return _build(data)


def first_env(names: list[str]) -> Optional[str]:
    """Return the first non-empty environment variable among ``names``."""
    for name in names:
        value = os.environ.get(name)
        if value:
            return value
    return None


def load_from_env() -> ClientConfig:
    """Load the client configuration from environment variables.

    Returns:
        The parsed ClientConfig.

    Raises:
        ConfigError: If the endpoint or a credential variable is missing,
                    or a numeric variable is malformed.
    """
    data: dict[str, Any] = {
        "endpoint_url": os.environ.get("S3PROTO_ENDPOINT"),
        "access_key": first_env(ENV_ACCESS_KEYS),
        "secret_key": first_env(ENV_SECRET_KEYS),
        "session_token": os.environ.get("AWS_SESSION_TOKEN"),
        "region": os.environ.get("S3PROTO_REGION"),
        "max_retries": os.environ.get("S3PROTO_MAX_RETRIES"),
        "timeout": os.environ.get("S3PROTO_TIMEOUT"),
    }

    if not data["endpoint_url"]:
        raise ConfigError("Missing environment variable: S3PROTO_ENDPOINT")
    if not data["access_key"]:
        raise ConfigError("Missing environment variable: S3PROTO_ACCESS_KEY")
    if not data["secret_key"]:
        raise ConfigError("Missing environment variable: S3PROTO_SECRET_KEY")

    return _build(data)


def has_env_config() -> bool:
    """Check if the S3PROTO_ENDPOINT environment variable is set."""
    return bool(os.environ.get("S3PROTO_ENDPOINT"))


def load_config(config_path: str = DEFAULT_CONFIG_PATH) -> ClientConfig:
    """Load the client configuration with environment priority.

    Priority order:
    1. Environment variables (if S3PROTO_ENDPOINT is set)
    2. The JSON file at ``config_path``

    Raises:
        ConfigError: If neither source provides a configuration.
    """
    if has_env_config():
        return load_from_env()
    if Path(config_path).exists():
        return load_from_json(config_path)

    raise ConfigError(
        "No endpoint configured. Set S3PROTO_ENDPOINT and credential "
        f"environment variables or create {config_path}."
    )
